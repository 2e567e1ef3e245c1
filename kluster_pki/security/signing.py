"""
Certificate issuance: self-signed authorities and leaf certificates signed by them.
"""
import ipaddress
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID, ObjectIdentifier

from .bundle import Bundle
from ..exceptions import SigningPreconditionError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

KEY_SIZE = 2048
# leaf certificates are valid for 2 years unless configured otherwise
DEFAULT_CERT_VALIDITY = timedelta(days=2 * 365)
# authorities are valid for 10 years
CA_VALIDITY = timedelta(days=10 * 365)
# backdate leaves to tolerate clock skew between issuer and verifier
CLOCK_SKEW_BACKDATE = timedelta(hours=1)

# Organizational units marking an authority as managed by this engine
CA_ISSUER_IDENTIFIERS = ("Kluster PKI", "Managed Kubernetes")


@dataclass
class AltNames:
    """Subject alternative names of a certificate."""
    dns_names: List[str] = field(default_factory=list)
    ips: List[IPAddress] = field(default_factory=list)


@dataclass
class SigningConfig:
    """Describes the certificate a CA is asked to issue."""
    common_name: str
    organization: List[str] = field(default_factory=list)
    organizational_unit: List[str] = field(default_factory=list)
    province: List[str] = field(default_factory=list)
    locality: List[str] = field(default_factory=list)
    alt_names: AltNames = field(default_factory=AltNames)
    usages: List[ObjectIdentifier] = field(default_factory=list)
    validity: Optional[timedelta] = None
    # prebuilt subject, replaces the name fields above when set
    subject: Optional[x509.Name] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def random_serial_number() -> int:
    """Random positive serial that fits into a signed 64 bit integer."""
    return secrets.randbelow(2 ** 63 - 1) + 1


def generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)


def build_name(common_name: str, organization: List[str] = None, organizational_unit: List[str] = None,
               province: List[str] = None, locality: List[str] = None) -> x509.Name:
    """Build a subject with one attribute per value, keeping the given order. Empty values are left out."""
    attributes = []
    for oid, values in (
        (NameOID.COMMON_NAME, [common_name]),
        (NameOID.ORGANIZATION_NAME, organization),
        (NameOID.ORGANIZATIONAL_UNIT_NAME, organizational_unit),
        (NameOID.STATE_OR_PROVINCE_NAME, province),
        (NameOID.LOCALITY_NAME, locality),
    ):
        for value in values or []:
            if value:
                attributes.append(x509.NameAttribute(oid, value))
    return x509.Name(attributes)


def subject_name(config: SigningConfig) -> x509.Name:
    if config.subject is not None:
        return config.subject
    return build_name(
        config.common_name,
        organization=config.organization,
        organizational_unit=config.organizational_unit,
        province=config.province,
        locality=config.locality,
    )


def sign(ca: Bundle, config: SigningConfig, now: Optional[datetime] = None) -> Bundle:
    """
    Issue a new certificate and key under the given authority.

    Args:
        ca: Bundle of the issuing certificate authority
        config: Description of the certificate to issue
        now: Issuance time, defaults to the current time

    Returns:
        Bundle holding the freshly generated key and signed certificate

    Raises:
        SigningPreconditionError: If ``ca`` is not a certificate authority
    """
    if not ca.is_ca:
        raise SigningPreconditionError(
            f"You can't use {ca.common_name!r} for signing. It's not a CA..."
        )

    now = now or utc_now()
    validity = config.validity or DEFAULT_CERT_VALIDITY
    key = generate_private_key()

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject_name(config))
        .issuer_name(ca.certificate.subject)
        .public_key(key.public_key())
        .serial_number(random_serial_number())
        .not_valid_before(max(now - CLOCK_SKEW_BACKDATE, ca.not_before))
        .not_valid_after(now + validity)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=True,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    )

    if config.usages:
        builder = builder.add_extension(x509.ExtendedKeyUsage(config.usages), critical=False)

    general_names = [x509.DNSName(name) for name in config.alt_names.dns_names]
    general_names += [x509.IPAddress(ip) for ip in config.alt_names.ips]
    if general_names:
        builder = builder.add_extension(x509.SubjectAlternativeName(general_names), critical=False)

    certificate = builder.sign(private_key=ca.private_key, algorithm=hashes.SHA256())
    logger.debug(f"Signed certificate {config.common_name!r} with {ca.common_name!r}")
    return Bundle(certificate=certificate, private_key=key)


def create_ca(cluster_name: str, authority_name: str, now: Optional[datetime] = None) -> Bundle:
    """Create a self-signed certificate authority for one cluster."""
    now = now or utc_now()
    key = generate_private_key()
    subject = issuer = build_name(
        f"{authority_name} CA",
        organizational_unit=[*CA_ISSUER_IDENTIFIERS, cluster_name],
    )

    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + CA_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=True,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(private_key=key, algorithm=hashes.SHA256())
    )

    logger.info(f"Created {authority_name} CA for cluster {cluster_name}")
    return Bundle(certificate=certificate, private_key=key)
