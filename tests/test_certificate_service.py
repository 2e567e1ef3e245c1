"""
Tests for reconciling stored clusters and issuing user credentials.
"""
import base64
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from cryptography import x509
from cryptography.x509.oid import NameOID
import yaml

from kluster_pki.exceptions import ClusterNotFoundError, ConcurrentUpdateError, ParseError
from kluster_pki.models.cluster import CertKind, ClusterIdentity, Principal
from kluster_pki.models.config import Config
from kluster_pki.models.database import get_database_manager
from kluster_pki.models.hierarchy import APISERVER_CLIENTS, TLS, Authority, ClientCertificate, Hierarchy
from kluster_pki.models.store import CertificateStore
from kluster_pki.services.certificate_service import CertificateService, ReconcileResult
from kluster_pki.services.cluster_service import ClusterService

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

SMALL = Hierarchy(
    authorities=(
        Authority(TLS, "tls-ca"),
        Authority(APISERVER_CLIENTS, "apiserver-clients-ca"),
    ),
    client_certificates=(
        ClientCertificate("admin", APISERVER_CLIENTS, "kubernetes-admin", "apiserver-clients-admin",
                          ("system:masters",)),
    ),
)


def make_identity(name="demo", **overrides):
    values = dict(
        name=name,
        namespace="kluster-demo",
        advertise_address="10.0.0.1",
        service_cidr="198.18.128.0/17",
        domain="kubernetes.example.com",
        project_id="project-1",
    )
    values.update(overrides)
    return ClusterIdentity(**values)


def make_config(**overrides):
    values = dict(domain="kubernetes.example.com", api_url="https://api.example.com",
                  auth_url="https://identity.example.com/v3")
    values.update(overrides)
    return Config(**values)


class TestCertificateServiceWithDatabase(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_manager = get_database_manager(os.path.join(self.temp_dir.name, "clusters.db"))
        self.cluster_service = ClusterService(self.db_manager, hierarchy=SMALL)
        self.now = T0
        self.service = CertificateService(self.cluster_service, make_config(), clock=lambda: self.now)

    def tearDown(self):
        self.db_manager.engine.dispose()
        self.temp_dir.cleanup()

    def test_reconcile_creates_and_persists(self):
        self.cluster_service.add_cluster(make_identity())

        updates = self.service.reconcile("demo")

        self.assertEqual([(u.kind, u.name) for u in updates], [
            (CertKind.CA, TLS),
            (CertKind.CA, APISERVER_CLIENTS),
            (CertKind.CLIENT_CERTIFICATE, "admin"),
        ])
        store, version = self.cluster_service.load_store("demo")
        self.assertEqual(version, 1)
        self.assertEqual(store.empty_slots(), [])

    def test_reconcile_without_changes_does_not_write(self):
        self.cluster_service.add_cluster(make_identity())
        self.service.reconcile("demo")

        self.now = T0 + timedelta(days=30)
        self.assertEqual(self.service.reconcile("demo"), [])
        self.assertEqual(self.cluster_service.load_store("demo")[1], 1)

    def test_reconcile_rotates_expiring_leaf(self):
        self.cluster_service.add_cluster(make_identity())
        self.service.reconcile("demo")

        self.now = T0 + timedelta(days=2 * 365 - 30)
        updates = self.service.reconcile("demo")

        self.assertEqual([u.name for u in updates], ["admin"])
        self.assertEqual(self.cluster_service.load_store("demo")[1], 2)

    def test_reconcile_unknown_cluster(self):
        with self.assertRaises(ClusterNotFoundError):
            self.service.reconcile("nope")

    def test_issue_credentials(self):
        self.cluster_service.add_cluster(make_identity())
        self.service.reconcile("demo")
        principal = Principal(name="alice", domain="example", groups=["dev"], roles=["member"])

        kubeconfig = yaml.safe_load(self.service.issue_credentials("demo", principal))

        store, _ = self.cluster_service.load_store("demo")
        cluster = kubeconfig["clusters"][0]["cluster"]
        self.assertEqual(cluster["server"], "https://demo.kubernetes.example.com")
        self.assertEqual(base64.b64decode(cluster["certificate-authority-data"]).decode(),
                         store.get("tls-ca.pem"))
        self.assertEqual(kubeconfig["current-context"], "demo")
        self.assertEqual(kubeconfig["contexts"][0]["context"], {"cluster": "demo", "user": "alice@demo"})

        user = kubeconfig["users"][0]
        self.assertEqual(user["name"], "alice@demo")
        cert = x509.load_pem_x509_certificate(base64.b64decode(user["user"]["client-certificate-data"]))
        self.assertEqual(cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value, "alice@example")
        self.assertEqual(cert.not_valid_after_utc, T0 + timedelta(hours=24))
        self.assertIn(b"BEGIN RSA PRIVATE KEY", base64.b64decode(user["user"]["client-key-data"]))

    def test_issue_credentials_uses_configured_validity(self):
        self.service.config = make_config(user_cert_validity_hours=2)
        self.cluster_service.add_cluster(make_identity())
        self.service.reconcile("demo")

        kubeconfig = yaml.safe_load(self.service.issue_credentials("demo", Principal(name="bob")))
        data = base64.b64decode(kubeconfig["users"][0]["user"]["client-certificate-data"])
        self.assertEqual(x509.load_pem_x509_certificate(data).not_valid_after_utc, T0 + timedelta(hours=2))

    def test_issue_credentials_before_ensure(self):
        self.cluster_service.add_cluster(make_identity())
        with self.assertRaises(ParseError):
            self.service.issue_credentials("demo", Principal(name="alice"))

    def test_certificate_infos(self):
        self.cluster_service.add_cluster(make_identity())
        self.service.reconcile("demo")

        infos = self.service.certificate_infos("demo")

        self.assertEqual([info["slot"] for info in infos],
                         ["tls-ca.pem", "apiserver-clients-ca.pem", "apiserver-clients-admin.pem"])
        self.assertTrue(all(info["is_valid"] for info in infos))
        self.assertEqual([info["is_ca"] for info in infos], [True, True, False])

    def test_reconcile_all_records_failures(self):
        self.cluster_service.add_cluster(make_identity("broken", advertise_address="not-an-ip"))
        self.cluster_service.add_cluster(make_identity("good"))

        results = self.service.reconcile_all()

        self.assertEqual([r.cluster for r in results], ["broken", "good"])
        self.assertFalse(results[0].success)
        self.assertIn("advertise address", results[0].error_message)
        self.assertTrue(results[1].success)
        self.assertEqual(len(results[1].updates), 3)


class TestReconcileRetries(unittest.TestCase):

    def setUp(self):
        self.cluster_service = MagicMock()
        self.cluster_service.get_cluster.return_value = make_identity()
        self.cluster_service.load_store.side_effect = lambda name: (CertificateStore(SMALL), 4)
        self.service = CertificateService(self.cluster_service, make_config(max_retry_attempts=2),
                                          clock=lambda: T0)

    def test_lost_race_is_retried(self):
        self.cluster_service.save_store.side_effect = [ConcurrentUpdateError("demo", 4, 5), 5]

        updates = self.service.reconcile("demo")

        self.assertEqual(len(updates), 3)
        self.assertEqual(self.cluster_service.save_store.call_count, 2)
        self.assertEqual(self.cluster_service.load_store.call_count, 2)

    def test_gives_up_after_max_attempts(self):
        self.cluster_service.save_store.side_effect = ConcurrentUpdateError("demo", 4, 5)

        with self.assertRaises(ConcurrentUpdateError):
            self.service.reconcile("demo")
        self.assertEqual(self.cluster_service.save_store.call_count, 2)

    def test_logging_service_receives_updates(self):
        logging_service = MagicMock()
        self.service.logging_service = logging_service
        self.cluster_service.save_store.return_value = 5

        updates = self.service.reconcile("demo")

        logging_service.log_cert_updates.assert_called_once_with("demo", updates)
        logging_service.measure_performance.assert_called_once_with("ensure_certificates", {"cluster": "demo"})


class TestReconcileAllIsolation(unittest.TestCase):

    def setUp(self):
        self.cluster_service = MagicMock()
        self.cluster_service.list_clusters.return_value = ["a-bad", "b-good"]

        def get_cluster(name):
            if name == "a-bad":
                raise RuntimeError("record is corrupt")
            return make_identity(name)

        self.cluster_service.get_cluster.side_effect = get_cluster
        self.cluster_service.load_store.side_effect = lambda name: (CertificateStore(SMALL), 0)
        self.cluster_service.save_store.return_value = 1
        self.service = CertificateService(self.cluster_service, make_config(), clock=lambda: T0)

    def test_unexpected_error_does_not_stop_other_clusters(self):
        with self.assertLogs("kluster_pki.services.certificate_service", level="ERROR") as logs:
            results = self.service.reconcile_all()

        self.assertEqual([r.cluster for r in results], ["a-bad", "b-good"])
        self.assertFalse(results[0].success)
        self.assertIn("RuntimeError: record is corrupt", results[0].error_message)
        self.assertTrue(results[1].success)
        self.assertEqual(len(results[1].updates), 3)
        self.cluster_service.save_store.assert_called_once()
        self.assertTrue(any("a-bad" in line for line in logs.output))


class TestReconcileResult(unittest.TestCase):

    def test_success(self):
        self.assertTrue(ReconcileResult("a").success)
        self.assertFalse(ReconcileResult("a", error_message="bad").success)


if __name__ == '__main__':
    unittest.main()
