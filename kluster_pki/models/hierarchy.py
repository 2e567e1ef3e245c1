"""
Table of certificate authorities and leaf certificates making up a cluster PKI.

The table is a plain value handed to the certificate factory, so alternative
hierarchies can be used without touching module state.
"""
import ipaddress
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .cluster import APISERVER_SANS_ANNOTATION, TUNNEL_SANS_ANNOTATION, ClusterIdentity

LOCALHOST = ipaddress.ip_address("127.0.0.1")


def cert_slot(base: str) -> str:
    return f"{base}.pem"


def key_slot(base: str) -> str:
    return f"{base}-key.pem"


@dataclass(frozen=True)
class Authority:
    """One independent trust root."""
    name: str
    slot_base: str

    @property
    def cert_slot(self) -> str:
        return cert_slot(self.slot_base)

    @property
    def key_slot(self) -> str:
        return key_slot(self.slot_base)


@dataclass(frozen=True)
class ClientCertificate:
    """A client-auth leaf; ``groups`` become the certificate organizations."""
    name: str
    authority: str
    common_name: str
    slot_base: str
    groups: Tuple[str, ...] = ()

    @property
    def cert_slot(self) -> str:
        return cert_slot(self.slot_base)

    @property
    def key_slot(self) -> str:
        return key_slot(self.slot_base)


@dataclass(frozen=True)
class ServerCertificate:
    """A server-auth leaf whose SANs are derived from the cluster identity."""
    name: str
    authority: str
    common_name: str
    slot_base: str
    dns_names: Callable[[ClusterIdentity], List[str]] = lambda identity: []
    ips: Callable[[ClusterIdentity], list] = lambda identity: []
    san_annotation: Optional[str] = None

    @property
    def cert_slot(self) -> str:
        return cert_slot(self.slot_base)

    @property
    def key_slot(self) -> str:
        return key_slot(self.slot_base)


@dataclass(frozen=True)
class Hierarchy:
    """Authorities plus the leaves they issue."""
    authorities: Tuple[Authority, ...]
    client_certificates: Tuple[ClientCertificate, ...] = ()
    server_certificates: Tuple[ServerCertificate, ...] = ()

    def __post_init__(self):
        names = [authority.name for authority in self.authorities]
        if len(set(names)) != len(names):
            raise ValueError("Authority names must be unique")
        for leaf in self.client_certificates + self.server_certificates:
            if leaf.authority not in names:
                raise ValueError(f"Certificate {leaf.name} references unknown authority {leaf.authority}")
        slots = self.slot_names()
        if len(set(slots)) != len(slots):
            raise ValueError("Certificate slots must be unique")

    def authority(self, name: str) -> Authority:
        for authority in self.authorities:
            if authority.name == name:
                return authority
        raise KeyError(f"Unknown authority: {name}")

    def slot_names(self) -> List[str]:
        """All slots in a fixed order: authorities first, then leaves."""
        slots = []
        for entry in self.authorities + self.client_certificates + self.server_certificates:
            slots.extend([entry.cert_slot, entry.key_slot])
        return slots


TLS_ETCD = "TLS-Etcd"
ETCD_CLIENTS = "Etcd-Clients"
ETCD_PEERS = "Etcd-Peers"
APISERVER_CLIENTS = "Apiserver-Clients"
APISERVER_NODES = "Apiserver-Nodes"
KUBELET_CLIENTS = "Kubelet-Clients"
TLS = "TLS"
AGGREGATION = "Aggregation"


def _apiserver_dns_names(identity: ClusterIdentity) -> List[str]:
    return [
        "kubernetes",
        "kubernetes.default",
        "kubernetes.default.svc",
        "apiserver",
        identity.name,
        f"{identity.name}.{identity.namespace}",
        f"{identity.name}.{identity.domain}",
    ]


def _apiserver_ips(identity: ClusterIdentity) -> list:
    return [LOCALHOST, identity.api_service_ip(), identity.advertise_ip()]


def _tunnel_dns_names(identity: ClusterIdentity) -> List[str]:
    return [f"{identity.name}-tunnel.{identity.domain}"]


def _etcd_dns_names(identity: ClusterIdentity) -> List[str]:
    return [
        f"{identity.name}-etcd",
        f"{identity.name}-etcd.{identity.namespace}",
        f"{identity.name}-etcd.{identity.namespace}.svc",
        "localhost",
    ]


DEFAULT_HIERARCHY = Hierarchy(
    authorities=(
        Authority(TLS_ETCD, "tls-etcd-ca"),
        Authority(ETCD_CLIENTS, "etcd-clients-ca"),
        Authority(ETCD_PEERS, "etcd-peers-ca"),
        Authority(APISERVER_CLIENTS, "apiserver-clients-ca"),
        Authority(APISERVER_NODES, "apiserver-nodes-ca"),
        Authority(KUBELET_CLIENTS, "kubelet-clients-ca"),
        Authority(TLS, "tls-ca"),
        Authority(AGGREGATION, "aggregation-ca"),
    ),
    client_certificates=(
        ClientCertificate("etcd-clients-apiserver", ETCD_CLIENTS, "apiserver", "etcd-clients-apiserver"),
        ClientCertificate("etcd-clients-dex", ETCD_CLIENTS, "dex", "etcd-clients-dex"),
        ClientCertificate("etcd-clients-backup", ETCD_CLIENTS, "backup", "etcd-clients-backup"),
        ClientCertificate("apiserver-clients-cluster-admin", APISERVER_CLIENTS, "cluster-admin",
                          "apiserver-clients-cluster-admin", groups=("system:masters",)),
        ClientCertificate("apiserver-clients-kube-controller-manager", APISERVER_CLIENTS,
                          "system:kube-controller-manager", "apiserver-clients-system-kube-controller-manager"),
        ClientCertificate("apiserver-clients-kube-proxy", APISERVER_CLIENTS, "system:kube-proxy",
                          "apiserver-clients-system-kube-proxy"),
        ClientCertificate("apiserver-clients-kube-scheduler", APISERVER_CLIENTS, "system:kube-scheduler",
                          "apiserver-clients-system-kube-scheduler"),
        ClientCertificate("apiserver-clients-tunnel", APISERVER_CLIENTS, "kluster-pki:tunnel",
                          "apiserver-clients-tunnel"),
        ClientCertificate("apiserver-clients-csi-controller", APISERVER_CLIENTS, "kluster-pki:csi-controller",
                          "apiserver-clients-csi-controller"),
        ClientCertificate("kubelet-clients-apiserver", KUBELET_CLIENTS, "apiserver", "kubelet-clients-apiserver"),
        ClientCertificate("aggregation-aggregator", AGGREGATION, "aggregator", "aggregation-aggregator"),
    ),
    server_certificates=(
        ServerCertificate("apiserver", TLS, "apiserver", "tls-apiserver",
                          dns_names=_apiserver_dns_names, ips=_apiserver_ips,
                          san_annotation=APISERVER_SANS_ANNOTATION),
        ServerCertificate("tunnel", TLS, "tunnel", "tls-tunnel",
                          dns_names=_tunnel_dns_names, san_annotation=TUNNEL_SANS_ANNOTATION),
        ServerCertificate("etcd", TLS_ETCD, "etcd", "tls-etcd",
                          dns_names=_etcd_dns_names, ips=lambda identity: [LOCALHOST]),
    ),
)
