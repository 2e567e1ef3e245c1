"""
Certificate factory: converges the PKI of one cluster and issues user certificates.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from cryptography.x509.oid import ExtendedKeyUsageOID

from ..exceptions import ParseError
from ..models.cluster import CertKind, CertUpdate, ClusterIdentity, Principal
from ..models.hierarchy import (
    APISERVER_CLIENTS, DEFAULT_HIERARCHY, Authority, ClientCertificate, Hierarchy, ServerCertificate,
)
from ..models.store import CertificateStore
from ..parsers.san_parser import parse_san_annotation
from ..parsers.subject_parser import UserSubject
from ..security.bundle import Bundle, decode_bundle, encode_cert, encode_key
from ..security.rotation import DEFAULT_EXPIRY_WINDOW, needs_rotation
from ..security.security_service import is_managed_ca
from ..security.signing import AltNames, SigningConfig, create_ca, sign, utc_now

USER_CERT_VALIDITY = timedelta(hours=24)


@dataclass
class EnsureResult:
    """New store value and the audit trail of one ensure run."""
    store: CertificateStore
    updates: List[CertUpdate]


class CertificateFactory:
    """Creates, audits and rotates the certificates of one cluster."""

    def __init__(self, identity: ClusterIdentity, store: CertificateStore,
                 hierarchy: Optional[Hierarchy] = None,
                 expiry_window: timedelta = DEFAULT_EXPIRY_WINDOW,
                 clock: Callable[[], datetime] = utc_now):
        """
        Initialize the factory.

        Args:
            identity: Cluster the certificates are issued for
            store: Certificate store; the factory works on its own copy
            hierarchy: Authority and leaf table, defaults to the store's hierarchy
            expiry_window: Leaves expiring within this window are rotated
            clock: Returns the current time
        """
        self.identity = identity
        self.hierarchy = hierarchy or store.hierarchy
        self.store = CertificateStore(hierarchy=self.hierarchy, data=store.to_dict())
        self.expiry_window = expiry_window
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self._updates: List[CertUpdate] = []

    def get_cert_updates(self) -> List[CertUpdate]:
        return list(self._updates)

    def ensure(self) -> List[CertUpdate]:
        """
        Create missing and rotate invalid certificates.

        Returns:
            Audit records for every created or rotated slot; empty when the
            store was already up to date

        Raises:
            ConfigurationError: If the identity is unusable; raised before
                any slot is touched
            ParseError: If an existing slot cannot be decoded
            SigningPreconditionError: If an authority slot holds a non-CA certificate
        """
        desired_server_sans = self._desired_server_sans()
        self._updates = []

        authorities: Dict[str, Bundle] = {}
        for authority in self.hierarchy.authorities:
            authorities[authority.name] = self.load_or_create_ca(authority)

        for leaf in self.hierarchy.client_certificates:
            config = SigningConfig(
                common_name=leaf.common_name,
                organization=list(leaf.groups),
                usages=[ExtendedKeyUsageOID.CLIENT_AUTH],
            )
            self._ensure_leaf(authorities[leaf.authority], leaf, config, CertKind.CLIENT_CERTIFICATE)

        for leaf in self.hierarchy.server_certificates:
            config = SigningConfig(
                common_name=leaf.common_name,
                alt_names=desired_server_sans[leaf.name],
                usages=[ExtendedKeyUsageOID.SERVER_AUTH],
            )
            self._ensure_leaf(authorities[leaf.authority], leaf, config, CertKind.SERVER_CERTIFICATE)

        if self._updates:
            self.logger.info(f"Ensured certificates of cluster {self.identity.name}: "
                             f"{len(self._updates)} created or rotated")
        else:
            self.logger.debug(f"Certificates of cluster {self.identity.name} are up to date")
        return self.get_cert_updates()

    def _desired_server_sans(self) -> Dict[str, AltNames]:
        """Resolve every server SAN set up front so a bad identity fails before mutation."""
        self.identity.advertise_ip()
        self.identity.api_service_ip()

        desired = {}
        for leaf in self.hierarchy.server_certificates:
            alt_names = AltNames(
                dns_names=list(leaf.dns_names(self.identity)),
                ips=list(leaf.ips(self.identity)),
            )
            if leaf.san_annotation:
                extension = parse_san_annotation(self.identity.annotation(leaf.san_annotation))
                alt_names.dns_names.extend(extension.dns_names)
                alt_names.ips.extend(extension.ips)
            desired[leaf.name] = alt_names
        return desired

    def load_or_create_ca(self, authority: Authority) -> Bundle:
        """
        Decode an authority from the store, creating it when a slot is empty.

        Raises:
            ParseError: If the stored authority cannot be decoded
        """
        if self.store.has(authority.cert_slot, authority.key_slot):
            try:
                bundle = decode_bundle(self.store.get(authority.key_slot), self.store.get(authority.cert_slot))
            except ParseError as e:
                raise ParseError(f"Failed parsing {authority.name} CA: {e}") from e
            if not is_managed_ca(bundle.certificate):
                self.logger.warning(f"{authority.name} CA of cluster {self.identity.name} was not issued by kluster-pki")
            return bundle

        bundle = create_ca(self.identity.name, authority.name, now=self.clock())
        self.store.set(authority.cert_slot, encode_cert(bundle))
        self.store.set(authority.key_slot, encode_key(bundle))
        self._updates.append(CertUpdate(CertKind.CA, authority.name, "CA missing"))
        return bundle

    def _ensure_leaf(self, ca: Bundle, leaf, config: SigningConfig, kind: CertKind) -> None:
        now = self.clock()
        if self.store.has(leaf.cert_slot, leaf.key_slot):
            try:
                existing = decode_bundle(self.store.get(leaf.key_slot), self.store.get(leaf.cert_slot))
            except ParseError as e:
                raise ParseError(f"Failed parsing certificate bundle {leaf.name}: {e}") from e
            reason, rotate = needs_rotation(existing.certificate, config, ca.certificate,
                                            expiry_window=self.expiry_window, now=now)
            if not rotate:
                return
        else:
            reason = "certificate missing"

        certificate = sign(ca, config, now=now)
        self.store.set(leaf.cert_slot, encode_cert(certificate))
        self.store.set(leaf.key_slot, encode_key(certificate))
        self._updates.append(CertUpdate(kind, leaf.name, reason))
        self.logger.info(f"{kind.value} {leaf.name} of cluster {self.identity.name} issued: {reason}")

    def user_cert(self, principal: Principal, api_url: str, auth_url: str = "",
                  validity: timedelta = USER_CERT_VALIDITY) -> Bundle:
        """
        Issue a short-lived client certificate that encodes the user's identity.

        The apiserver clients authority is only read; nothing is written to
        the store.

        Args:
            principal: Authenticated user
            api_url: URL of the service handing out the certificate
            auth_url: OpenStack identity endpoint, may be empty
            validity: Lifetime of the certificate

        Raises:
            ParseError: If the apiserver clients authority is missing or corrupt
        """
        authority = self.hierarchy.authority(APISERVER_CLIENTS)
        try:
            ca = decode_bundle(self.store.get(authority.key_slot), self.store.get(authority.cert_slot))
        except ParseError as e:
            raise ParseError(f"Failed parsing {authority.name} CA: {e}") from e

        subject = self.user_subject(principal, api_url, auth_url)
        return sign(ca, SigningConfig(
            common_name=subject.common_name,
            subject=subject.encode(),
            usages=[ExtendedKeyUsageOID.CLIENT_AUTH],
            validity=validity,
        ), now=self.clock())

    def user_subject(self, principal: Principal, api_url: str, auth_url: str = "") -> UserSubject:
        project_id = self.identity.project_id or principal.account or self.identity.account
        return UserSubject(
            username=principal.name,
            domain=principal.domain,
            groups=list(principal.groups),
            roles=list(principal.roles),
            auth_url=auth_url,
            project_id=project_id,
            api_url=api_url,
        )


def ensure_certificates(identity: ClusterIdentity, store: CertificateStore, **kwargs) -> EnsureResult:
    """
    Converge a store without mutating it.

    Args:
        identity: Cluster the certificates are issued for
        store: Current store value, left untouched
        **kwargs: Passed on to ``CertificateFactory``

    Returns:
        EnsureResult with the new store value and the audit trail
    """
    factory = CertificateFactory(identity, store, **kwargs)
    updates = factory.ensure()
    return EnsureResult(store=factory.store, updates=updates)
