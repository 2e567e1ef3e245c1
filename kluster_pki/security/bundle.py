"""
Key/certificate bundle and its PEM codec.
"""
from dataclasses import dataclass
from datetime import datetime

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from ..exceptions import ParseError


@dataclass
class Bundle:
    """An RSA private key together with the certificate issued for it."""
    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey

    @property
    def is_ca(self) -> bool:
        """Whether the certificate carries a BasicConstraints CA flag."""
        try:
            constraints = self.certificate.extensions.get_extension_for_class(x509.BasicConstraints)
        except x509.ExtensionNotFound:
            return False
        return constraints.value.ca

    @property
    def not_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_after(self) -> datetime:
        return self.certificate.not_valid_after_utc

    @property
    def common_name(self) -> str:
        attributes = self.certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return attributes[0].value if attributes else ""


def decode_bundle(key_pem: str, cert_pem: str) -> Bundle:
    """
    Rebuild a bundle from PEM text.

    Args:
        key_pem: PEM encoded RSA private key (PKCS#1 or PKCS#8)
        cert_pem: PEM text holding one or more certificates; the first is used

    Returns:
        Bundle with the decoded key and certificate

    Raises:
        ParseError: If either block cannot be decoded or the key is not RSA
    """
    try:
        certificates = x509.load_pem_x509_certificates(_to_bytes(cert_pem))
    except ValueError as e:
        raise ParseError(f"Failed to decode certificate: {e}") from e
    if not certificates:
        raise ParseError("No certificates found")

    try:
        key = serialization.load_pem_private_key(_to_bytes(key_pem), password=None)
    except (ValueError, TypeError) as e:
        raise ParseError(f"Failed to decode private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ParseError("Key does not seem to be of type RSA")

    return Bundle(certificate=certificates[0], private_key=key)


def encode_cert(bundle: Bundle) -> str:
    """Encode the bundle's certificate as a CERTIFICATE PEM block."""
    return bundle.certificate.public_bytes(serialization.Encoding.PEM).decode()


def encode_key(bundle: Bundle) -> str:
    """Encode the bundle's key as a PKCS#1 RSA PRIVATE KEY PEM block."""
    return bundle.private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption()
    ).decode()


def _to_bytes(value) -> bytes:
    if isinstance(value, bytes):
        return value
    return (value or "").encode()
