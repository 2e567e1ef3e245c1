"""
Parser for annotation-supplied subject alternative name extensions.

The annotation value is a JSON array of strings. Every entry that parses as
an IP address literal is an IP SAN, everything else is a DNS name:

    ["api.example.com", "10.0.0.7"]
"""
import ipaddress
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from cryptography import x509

from ..exceptions import ConfigurationError
from ..security.signing import AltNames

logger = logging.getLogger(__name__)


class SANType(Enum):
    IP = "ip"
    DNS_NAME = "dns"


@dataclass(frozen=True)
class IPOrDNSName:
    """One annotation entry after discrimination."""
    type: SANType
    value: str

    @classmethod
    def parse(cls, raw: str) -> 'IPOrDNSName':
        if not isinstance(raw, str) or not raw:
            raise ConfigurationError(f"Parse error: insufficient length for value [{raw!r}]")
        try:
            return cls(SANType.IP, str(ipaddress.ip_address(raw)))
        except ValueError:
            pass
        try:
            x509.DNSName(raw)
        except ValueError as e:
            raise ConfigurationError(f"Invalid DNS name in SAN annotation {raw!r}: {e}") from e
        return cls(SANType.DNS_NAME, raw)


def parse_san_entries(value: Optional[str]) -> List[IPOrDNSName]:
    """
    Parse an annotation value into typed entries.

    Args:
        value: JSON text from the annotation, may be None or empty

    Returns:
        Entries in annotation order

    Raises:
        ConfigurationError: If the value is not a JSON array of non-empty strings
    """
    if value is None or not value.strip():
        return []
    try:
        raw_entries = json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid SAN annotation {value!r}: {e}") from e
    if not isinstance(raw_entries, list):
        raise ConfigurationError(f"Invalid SAN annotation {value!r}: expected a JSON array")
    return [IPOrDNSName.parse(entry) for entry in raw_entries]


def parse_san_annotation(value: Optional[str]) -> AltNames:
    """Parse an annotation value into DNS names and IP addresses."""
    alt_names = AltNames()
    for entry in parse_san_entries(value):
        if entry.type is SANType.IP:
            alt_names.ips.append(ipaddress.ip_address(entry.value))
        else:
            alt_names.dns_names.append(entry.value)
    if alt_names.dns_names or alt_names.ips:
        logger.debug(f"Parsed SAN extension: dns={alt_names.dns_names} ips={alt_names.ips}")
    return alt_names
