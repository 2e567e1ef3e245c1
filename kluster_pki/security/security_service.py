"""
Certificate inspection and issuer verification helpers.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.x509.oid import NameOID

from .models import CertificateInfo
from .signing import CA_ISSUER_IDENTIFIERS
from ..exceptions import ParseError

logger = logging.getLogger(__name__)


def dns_names(cert: x509.Certificate) -> List[str]:
    """DNS subject alternative names in certificate order."""
    san = _subject_alt_names(cert)
    return san.get_values_for_type(x509.DNSName) if san else []


def ip_addresses(cert: x509.Certificate) -> list:
    """IP subject alternative names in certificate order."""
    san = _subject_alt_names(cert)
    return san.get_values_for_type(x509.IPAddress) if san else []


def _subject_alt_names(cert: x509.Certificate) -> Optional[x509.SubjectAlternativeName]:
    try:
        return cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return None


def is_signed_by(cert: x509.Certificate, ca_cert: x509.Certificate) -> bool:
    """Check that ``cert`` was issued and signed by ``ca_cert``."""
    # Compare issuer of the cert with subject of the CA
    if cert.issuer != ca_cert.subject:
        return False

    ca_public_key = ca_cert.public_key()
    if not isinstance(ca_public_key, rsa.RSAPublicKey):
        return False

    hash_algorithm = cert.signature_hash_algorithm or hashes.SHA256()
    try:
        ca_public_key.verify(
            cert.signature,
            cert.tbs_certificate_bytes,
            padding.PKCS1v15(),
            hash_algorithm
        )
    except InvalidSignature:
        logger.debug(f"Signature of {cert.subject.rfc4514_string()} does not verify against "
                     f"{ca_cert.subject.rfc4514_string()}")
        return False
    return True


def is_managed_ca(ca_cert: x509.Certificate) -> bool:
    """Whether an authority carries the organizational units this engine stamps on its CAs."""
    units = {attribute.value for attribute in
             ca_cert.subject.get_attributes_for_oid(NameOID.ORGANIZATIONAL_UNIT_NAME)}
    return set(CA_ISSUER_IDENTIFIERS).issubset(units)


def get_certificate_info(cert_pem: str, now: Optional[datetime] = None) -> CertificateInfo:
    """
    Get detailed information about a certificate.

    Raises:
        ParseError: If the PEM text holds no certificate
    """
    try:
        cert = x509.load_pem_x509_certificate(cert_pem.encode())
    except ValueError as e:
        raise ParseError(f"Failed to decode certificate: {e}") from e

    now = now or datetime.now(timezone.utc)
    not_before = cert.not_valid_before_utc
    not_after = cert.not_valid_after_utc

    try:
        is_ca = cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca
    except x509.ExtensionNotFound:
        is_ca = False

    return CertificateInfo(
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        serial_number=str(cert.serial_number),
        not_before=not_before,
        not_after=not_after,
        is_valid=not_before <= now <= not_after,
        is_ca=is_ca,
        fingerprint=cert.fingerprint(hashes.SHA256()).hex(),
        dns_names=dns_names(cert),
        ip_addresses=[str(ip) for ip in ip_addresses(cert)],
    )


def is_certificate_valid(cert_pem: str, now: Optional[datetime] = None) -> bool:
    """Check if a certificate is currently valid (not expired)."""
    try:
        return get_certificate_info(cert_pem, now=now).is_valid
    except ParseError:
        return False
