"""SAML attribute dictionary and mapping.

Translates the wire identifiers (OID / MACE names) sent by the UBC IdP into
friendly names and filters an assertion's attributes down to the names an
application asked for.

Several wire identifiers may share one friendly name (the UBC IdP may send
either the OID or the legacy MACE form). Each definition lists its wire
identifiers in preference order; the first one is used when a friendly name
has to be turned back into a wire identifier.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class AttributeDefinition:
    """A friendly attribute name and the wire identifiers that carry it."""

    friendly_name: str
    wire_ids: tuple[str, ...]
    description: str = ""

    @property
    def preferred_wire_id(self) -> str:
        """Wire identifier used for reverse lookups."""
        return self.wire_ids[0]


class AttributeDictionary:
    """Immutable bidirectional index of attribute definitions.

    Both directions are built once. ``to_friendly`` maps every wire
    identifier to its friendly name; ``to_wire`` maps each friendly name to
    its preferred wire identifier.
    """

    def __init__(self, definitions: Iterable[AttributeDefinition]) -> None:
        forward: dict[str, str] = {}
        reverse: dict[str, str] = {}
        by_name: dict[str, AttributeDefinition] = {}

        for definition in definitions:
            if not definition.wire_ids:
                raise ValueError(f"Attribute {definition.friendly_name} has no wire identifiers")
            if definition.friendly_name in by_name:
                raise ValueError(f"Duplicate friendly name: {definition.friendly_name}")
            for wire_id in definition.wire_ids:
                if wire_id in forward:
                    raise ValueError(
                        f"Wire identifier {wire_id} is already mapped to {forward[wire_id]}"
                    )
                forward[wire_id] = definition.friendly_name
            reverse[definition.friendly_name] = definition.preferred_wire_id
            by_name[definition.friendly_name] = definition

        self.to_friendly: Mapping[str, str] = MappingProxyType(forward)
        self.to_wire: Mapping[str, str] = MappingProxyType(reverse)
        self._definitions: Mapping[str, AttributeDefinition] = MappingProxyType(by_name)

    def __contains__(self, friendly_name: object) -> bool:
        return friendly_name in self._definitions

    def __iter__(self):
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def get(self, friendly_name: str) -> AttributeDefinition | None:
        """Get the definition for a friendly name."""
        return self._definitions.get(friendly_name)

    def friendly_name(self, wire_id: str) -> str:
        """Translate a wire identifier, returning it unchanged if unknown."""
        return self.to_friendly.get(wire_id, wire_id)

    def wire_ids(self, friendly_name: str) -> tuple[str, ...]:
        """All wire identifiers for a friendly name, preferred first."""
        definition = self._definitions.get(friendly_name)
        return definition.wire_ids if definition else ()

    def is_preferred(self, wire_id: str) -> bool:
        """Check whether a wire identifier is the preferred one for its name."""
        friendly = self.to_friendly.get(wire_id)
        return friendly is not None and self.to_wire[friendly] == wire_id


UBC_ATTRIBUTES = AttributeDictionary(
    [
        # UBC-specific
        AttributeDefinition(
            "ubcEduCwlPuid",
            (
                "urn:oid:1.3.6.1.4.1.60.6.1.6",
                "urn:mace:dir:attribute-def:ubcEduCwlPuid",
            ),
            "CWL persistent unique identifier",
        ),
        AttributeDefinition(
            "ubcEduStudentNumber",
            ("urn:oid:1.3.6.1.4.1.60.6.1.5",),
            "UBC student number",
        ),
        # eduPerson
        AttributeDefinition(
            "eduPersonAffiliation",
            ("urn:oid:1.3.6.1.4.1.5923.1.1.1.1",),
            "Affiliation type (e.g., faculty, student, staff)",
        ),
        AttributeDefinition(
            "eduPersonPrincipalName",
            ("urn:oid:1.3.6.1.4.1.5923.1.1.1.6",),
            "Principal name - unique identifier within scope",
        ),
        AttributeDefinition(
            "eduPersonEntitlement",
            ("urn:oid:1.3.6.1.4.1.5923.1.1.1.7",),
            "Entitlement - rights granted to the user",
        ),
        AttributeDefinition(
            "eduPersonScopedAffiliation",
            ("urn:oid:1.3.6.1.4.1.5923.1.1.1.9",),
            "Scoped affiliation (e.g., student@ubc.ca)",
        ),
        AttributeDefinition(
            "eduPersonTargetedID",
            ("urn:oid:1.3.6.1.4.1.5923.1.1.1.10",),
            "Targeted ID - persistent pseudonymous identifier",
        ),
        # inetOrgPerson / X.500
        AttributeDefinition(
            "uid",
            ("urn:oid:0.9.2342.19200300.100.1.1",),
            "User ID",
        ),
        AttributeDefinition(
            "mail",
            ("urn:oid:0.9.2342.19200300.100.1.3",),
            "Email address",
        ),
        AttributeDefinition(
            "cn",
            ("urn:oid:2.5.4.3",),
            "Common Name - full name of the user",
        ),
        AttributeDefinition(
            "sn",
            ("urn:oid:2.5.4.4",),
            "Surname - family name / last name",
        ),
        AttributeDefinition(
            "givenName",
            ("urn:oid:2.5.4.42",),
            "Given Name - first name",
        ),
        AttributeDefinition(
            "displayName",
            ("urn:oid:2.16.840.1.113730.3.1.241",),
            "Display Name - preferred name for display",
        ),
    ]
)

# wire identifier -> friendly name
ATTRIBUTE_MAPPINGS: Mapping[str, str] = UBC_ATTRIBUTES.to_friendly


def get_friendly_name(wire_id: str, dictionary: AttributeDictionary = UBC_ATTRIBUTES) -> str:
    """Get the friendly name for a wire identifier.

    Args:
        wire_id: OID or MACE attribute name.
        dictionary: Attribute dictionary to consult.

    Returns:
        Friendly name, or ``wire_id`` unchanged if it is not in the dictionary.
    """
    return dictionary.friendly_name(wire_id)


def get_wire_id(friendly_name: str, dictionary: AttributeDictionary = UBC_ATTRIBUTES) -> str | None:
    """Get the preferred wire identifier for a friendly name."""
    return dictionary.to_wire.get(friendly_name)


def map_attributes(
    raw_attributes: Mapping[str, Any] | None,
    requested: Sequence[str] | None = None,
    dictionary: AttributeDictionary = UBC_ATTRIBUTES,
) -> dict[str, Any]:
    """Filter and rename assertion attributes.

    With no requested names every raw attribute is returned, translated to
    its friendly name where the dictionary knows it. If two raw keys
    translate to the same name, the preferred wire identifier's value wins.

    With requested names, each one is looked up in order under its
    preferred wire identifier, then its remaining wire identifiers, then
    under the friendly name itself (for IdPs that already send friendly
    names). Names found nowhere are left out of the result.

    Values are never copied, coerced or flattened.

    Args:
        raw_attributes: Attributes keyed by wire identifier.
        requested: Friendly names the application wants.
        dictionary: Attribute dictionary to translate with.

    Returns:
        New dictionary keyed by friendly name.
    """
    if not raw_attributes:
        return {}

    mapped: dict[str, Any] = {}

    if not requested:
        for key, value in raw_attributes.items():
            friendly = dictionary.friendly_name(key)
            if friendly in mapped and not dictionary.is_preferred(key):
                continue
            mapped[friendly] = value
        return mapped

    for friendly in requested:
        for wire_id in dictionary.wire_ids(friendly):
            if wire_id in raw_attributes:
                mapped[friendly] = raw_attributes[wire_id]
                break
        else:
            if friendly in raw_attributes:
                mapped[friendly] = raw_attributes[friendly]

    return mapped
