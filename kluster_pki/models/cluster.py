"""
Data models describing a managed cluster, an end user and the audit trail of one ensure run.
"""
import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from ..exceptions import ConfigurationError

APISERVER_SANS_ANNOTATION = "kluster-pki/apiserver-sans"
TUNNEL_SANS_ANNOTATION = "kluster-pki/tunnel-sans"


@dataclass(frozen=True)
class ClusterIdentity:
    """Read-only description of the cluster whose PKI is ensured."""
    name: str
    namespace: str
    advertise_address: str
    service_cidr: str
    domain: str
    project_id: str = ""
    account: str = ""
    annotations: Dict[str, str] = field(default_factory=dict)

    def advertise_ip(self):
        """
        Parse the advertise address.

        Raises:
            ConfigurationError: If the address is not an IP literal
        """
        try:
            return ipaddress.ip_address(self.advertise_address)
        except ValueError as e:
            raise ConfigurationError(
                f"Failed to parse clusters advertise address: {self.advertise_address!r}"
            ) from e

    def api_service_ip(self):
        """
        First host address of the service CIDR, used by the in-cluster apiserver service.

        Raises:
            ConfigurationError: If the CIDR is invalid or has no host addresses
        """
        try:
            network = ipaddress.ip_network(self.service_cidr, strict=False)
        except ValueError as e:
            raise ConfigurationError(f"Failed to parse service CIDR {self.service_cidr!r}: {e}") from e
        if network.num_addresses < 2:
            raise ConfigurationError(f"Service CIDR {self.service_cidr!r} is too small")
        return network.network_address + 1

    def annotation(self, key: str) -> Optional[str]:
        return (self.annotations or {}).get(key)


@dataclass
class Principal:
    """An authenticated OpenStack user asking for cluster credentials."""
    name: str
    domain: str = ""
    groups: List[str] = field(default_factory=list)
    roles: List[str] = field(default_factory=list)
    id: str = ""
    account: str = ""
    account_name: str = ""


class CertKind(Enum):
    """Kinds of certificate slots tracked by the audit trail."""
    CA = "CA"
    CLIENT_CERTIFICATE = "Client Certificate"
    SERVER_CERTIFICATE = "Server Certificate"


@dataclass(frozen=True)
class CertUpdate:
    """Audit record for a created or rotated certificate."""
    kind: CertKind
    name: str
    reason: str

    def __str__(self):
        return f"{self.kind.value} {self.name}: {self.reason}"

    def to_dict(self) -> dict:
        return {'kind': self.kind.value, 'name': self.name, 'reason': self.reason}
