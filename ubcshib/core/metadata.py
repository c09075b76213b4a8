"""IdP metadata retrieval and signing certificate extraction."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from xml.etree import ElementTree as ET

import httpx
from cryptography import x509
from cryptography.hazmat.primitives import hashes

from ubcshib.core.errors import CertificateNotFoundError, MetadataFetchError
from ubcshib.core.logging import LoggingClient

logger = logging.getLogger(__name__)

SAML_NAMESPACES = {
    "md": "urn:oasis:names:tc:SAML:2.0:metadata",
    "ds": "http://www.w3.org/2000/09/xmldsig#",
}

_ENTITY_DESCRIPTOR = f"{{{SAML_NAMESPACES['md']}}}EntityDescriptor"

DEFAULT_TIMEOUT = 10.0


@dataclass
class CertificateInfo:
    """Details of an IdP signing certificate."""

    subject: str
    issuer: str
    not_before: datetime
    not_after: datetime
    fingerprint_sha256: str

    @property
    def is_expired(self) -> bool:
        """Check whether the certificate has expired."""
        return datetime.now(UTC) > self.not_after


def _find_idp_descriptor(root: ET.Element) -> ET.Element | None:
    if root.tag == _ENTITY_DESCRIPTOR:
        return root.find("md:IDPSSODescriptor", SAML_NAMESPACES)
    # EntitiesDescriptor aggregate: first entity that is an IdP
    return root.find(".//md:EntityDescriptor/md:IDPSSODescriptor", SAML_NAMESPACES)


def extract_signing_certificates(metadata_xml: str | bytes) -> list[str]:
    """Extract the IdP signing certificates from SAML metadata.

    Only the first IDPSSODescriptor is considered. Key descriptors marked
    ``use="encryption"`` are skipped; descriptors without a ``use``
    attribute serve both purposes and are included.

    Args:
        metadata_xml: Raw metadata document.

    Returns:
        Base64 certificate bodies with all whitespace removed, in document
        order. Empty if none were found.

    Raises:
        CertificateNotFoundError: If the document is not well-formed XML.
    """
    try:
        root = ET.fromstring(metadata_xml)
    except ET.ParseError as e:
        raise CertificateNotFoundError(f"Invalid XML in IdP metadata: {e}") from e

    idp_descriptor = _find_idp_descriptor(root)
    if idp_descriptor is None:
        return []

    certificates = []
    for key_descriptor in idp_descriptor.findall("md:KeyDescriptor", SAML_NAMESPACES):
        if key_descriptor.get("use", "signing") != "signing":
            continue
        for cert_elem in key_descriptor.findall(
            "ds:KeyInfo/ds:X509Data/ds:X509Certificate", SAML_NAMESPACES
        ):
            if cert_elem.text and cert_elem.text.strip():
                certificates.append("".join(cert_elem.text.split()))

    return certificates


def extract_cert_from_metadata(metadata_xml: str | bytes) -> str:
    """Extract the first IdP signing certificate from SAML metadata.

    Raises:
        CertificateNotFoundError: If no signing certificate is present.
    """
    certificates = extract_signing_certificates(metadata_xml)
    if not certificates:
        raise CertificateNotFoundError("No X509Certificate found in IdP metadata")
    if len(certificates) > 1:
        logger.warning(
            f"IdP metadata lists {len(certificates)} signing certificates, using the first"
        )
    return certificates[0]


def fetch_idp_certificate(
    metadata_url: str,
    timeout: float = DEFAULT_TIMEOUT,
    client: httpx.Client | None = None,
) -> str:
    """Fetch IdP metadata and extract its signing certificate.

    Args:
        metadata_url: URL to fetch metadata from (http or https).
        timeout: Request timeout in seconds.
        client: HTTP client to use. A protocol-logging client is created if
            not provided.

    Returns:
        Base64-encoded signing certificate.

    Raises:
        MetadataFetchError: On transport errors or a non-2xx response.
        CertificateNotFoundError: If the metadata has no signing certificate.
    """
    logger.info(f"Fetching IdP metadata from {metadata_url}")
    try:
        if client is not None:
            response = client.get(metadata_url, timeout=timeout)
            response.raise_for_status()
        else:
            with LoggingClient(timeout=timeout) as logging_client:
                response = logging_client.get(metadata_url)
                response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise MetadataFetchError(
            f"Failed to fetch IdP metadata from {metadata_url}: "
            f"HTTP {e.response.status_code}"
        ) from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        # InvalidURL is not an HTTPError; it is raised while building the request
        raise MetadataFetchError(
            f"Failed to fetch IdP metadata from {metadata_url}: {e}"
        ) from e

    return extract_cert_from_metadata(response.content)


def format_pem_certificate(cert_b64: str) -> str:
    """Wrap a base64 certificate body in PEM armour (64-column lines)."""
    body = "".join(cert_b64.split())
    lines = [body[i : i + 64] for i in range(0, len(body), 64)]
    return "-----BEGIN CERTIFICATE-----\n" + "\n".join(lines) + "\n-----END CERTIFICATE-----\n"


def get_certificate_info(cert_b64: str) -> CertificateInfo:
    """Inspect a base64 or PEM certificate.

    Raises:
        ValueError: If the data is not a valid X.509 certificate.
    """
    pem = cert_b64 if "BEGIN CERTIFICATE" in cert_b64 else format_pem_certificate(cert_b64)
    cert = x509.load_pem_x509_certificate(pem.encode("utf-8"))
    return CertificateInfo(
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        not_before=cert.not_valid_before_utc,
        not_after=cert.not_valid_after_utc,
        fingerprint_sha256=cert.fingerprint(hashes.SHA256()).hex(),
    )
