"""
Certificate service: reconciles stored cluster PKIs and hands out user credentials.
"""
import base64
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import yaml

from ..exceptions import CertificateEngineError, ConcurrentUpdateError, ParseError
from ..models.cluster import CertUpdate, ClusterIdentity, Principal
from ..models.config import Config
from ..models.hierarchy import TLS
from ..security.bundle import Bundle, encode_cert, encode_key
from ..security.security_service import get_certificate_info
from ..security.signing import utc_now
from .certificate_factory import CertificateFactory, ensure_certificates
from .cluster_service import ClusterService


def render_kubeconfig(identity: ClusterIdentity, user: str, server_ca_pem: str, bundle: Bundle) -> str:
    """Render a client config for ``identity`` authenticating with ``bundle``."""

    def b64(text: str) -> str:
        return base64.b64encode(text.encode()).decode()

    name = identity.name
    config = {
        "apiVersion": "v1",
        "kind": "Config",
        "current-context": name,
        "clusters": [{
            "name": name,
            "cluster": {
                "server": f"https://{identity.name}.{identity.domain}",
                "certificate-authority-data": b64(server_ca_pem),
            },
        }],
        "contexts": [{
            "name": name,
            "context": {"cluster": name, "user": user},
        }],
        "users": [{
            "name": user,
            "user": {
                "client-certificate-data": b64(encode_cert(bundle)),
                "client-key-data": b64(encode_key(bundle)),
            },
        }],
    }
    return yaml.safe_dump(config, sort_keys=False)


@dataclass
class ReconcileResult:
    """Outcome of reconciling one cluster."""
    cluster: str
    updates: List[CertUpdate] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error_message is None


class CertificateService:
    """Runs the certificate factory against clusters kept by a ``ClusterService``."""

    def __init__(self, cluster_service: ClusterService, config: Config,
                 logging_service=None, clock: Callable[[], datetime] = utc_now):
        """
        Initialize the certificate service.

        Args:
            cluster_service: Persistence for identities and certificate stores
            config: Application configuration
            logging_service: Optional LoggingService used for timings and audit entries
            clock: Returns the current time
        """
        self.cluster_service = cluster_service
        self.config = config
        self.logging_service = logging_service
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    @property
    def expiry_window(self) -> timedelta:
        return timedelta(days=self.config.expiry_window_days)

    def reconcile(self, name: str) -> List[CertUpdate]:
        """
        Ensure the certificates of one cluster and persist the result.

        The store is re-read and the ensure re-run whenever the save loses a
        compare-and-swap race, up to ``max_retry_attempts`` attempts.

        Returns:
            Audit records of the attempt that was persisted

        Raises:
            ClusterNotFoundError: If the cluster is unknown
            ConcurrentUpdateError: If every attempt lost the race
            CertificateEngineError: Whatever the factory raises, unchanged
        """
        attempts = self.config.max_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self._reconcile_once(name)
            except ConcurrentUpdateError as e:
                if attempt == attempts:
                    self.logger.error(f"Giving up on cluster {name} after {attempts} attempts: {e}")
                    raise
                self.logger.warning(f"Attempt {attempt} for cluster {name} lost a concurrent update, retrying")

    def _reconcile_once(self, name: str) -> List[CertUpdate]:
        identity = self.cluster_service.get_cluster(name)
        store, version = self.cluster_service.load_store(name)

        with self._measure("ensure_certificates", {"cluster": name}):
            result = ensure_certificates(identity, store, expiry_window=self.expiry_window, clock=self.clock)

        if not result.updates:
            self.logger.debug(f"Cluster {name} needs no certificate changes")
            return []

        self.cluster_service.save_store(name, result.store, version)
        if self.logging_service:
            self.logging_service.log_cert_updates(name, result.updates)
        else:
            for update in result.updates:
                self.logger.info(f"Cluster {name}: {update}")
        return result.updates

    def issue_credentials(self, name: str, principal: Principal) -> str:
        """
        Issue a user certificate and wrap it into a kubeconfig.

        Raises:
            ClusterNotFoundError: If the cluster is unknown
            ParseError: If the stored authorities are missing or corrupt
        """
        identity = self.cluster_service.get_cluster(name)
        store, _ = self.cluster_service.load_store(name)

        server_ca_pem = store.get(store.hierarchy.authority(TLS).cert_slot)
        if not server_ca_pem:
            raise ParseError(f"Server CA certificate of cluster {name} not found")

        factory = CertificateFactory(identity, store, clock=self.clock)
        with self._measure("issue_credentials", {"cluster": name, "user": principal.name}):
            bundle = factory.user_cert(
                principal,
                api_url=self.config.api_url,
                auth_url=self.config.auth_url,
                validity=timedelta(hours=self.config.user_cert_validity_hours),
            )

        self.logger.info(f"Issued credentials for {bundle.common_name} on cluster {name}")
        return render_kubeconfig(identity, f"{principal.name}@{name}", server_ca_pem, bundle)

    def certificate_infos(self, name: str) -> List[Dict[str, Any]]:
        """Describe every filled certificate slot of a cluster."""
        store, _ = self.cluster_service.load_store(name)
        now = self.clock()
        infos = []
        for slot in store.slot_names():
            value = store.get(slot)
            if not value or slot.endswith("-key.pem"):
                continue
            info = get_certificate_info(value, now=now).to_dict()
            info["slot"] = slot
            infos.append(info)
        return infos

    def _measure(self, operation: str, extra_data: Optional[Dict[str, Any]] = None):
        if self.logging_service:
            return self.logging_service.measure_performance(operation, extra_data)
        return nullcontext()

    def reconcile_all(self) -> List[ReconcileResult]:
        """
        Reconcile every known cluster.

        A failing cluster does not stop the run; its error is recorded in its
        result and logged.
        """
        results = []
        for name in self.cluster_service.list_clusters():
            try:
                results.append(ReconcileResult(name, updates=self.reconcile(name)))
            except CertificateEngineError as e:
                self.logger.error(f"Reconciling cluster {name} failed: {e}")
                results.append(ReconcileResult(name, error_message=str(e)))
            except Exception as e:
                self.logger.exception(f"Unexpected error reconciling cluster {name}")
                results.append(ReconcileResult(name, error_message=f"{type(e).__name__}: {e}"))

        failed = sum(1 for result in results if not result.success)
        changed = sum(len(result.updates) for result in results)
        self.logger.info(f"Reconciled {len(results)} clusters: {changed} certificates changed, {failed} failures")
        return results
