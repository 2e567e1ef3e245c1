"""
Cluster service for persisting cluster identities and their certificate stores.
"""

import json
import logging
from datetime import datetime
from typing import List, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..exceptions import ClusterNotFoundError, ConcurrentUpdateError
from ..models.cluster import ClusterIdentity
from ..models.database import ClusterRecord, DatabaseManager
from ..models.hierarchy import DEFAULT_HIERARCHY, Hierarchy
from ..models.store import CertificateStore


class ClusterService:
    """Service class for storing clusters and their certificate material."""

    def __init__(self, db_manager: DatabaseManager, hierarchy: Hierarchy = DEFAULT_HIERARCHY):
        """
        Initialize the cluster service.

        Args:
            db_manager: Database manager instance
            hierarchy: Hierarchy used to interpret stored certificate maps
        """
        self.db_manager = db_manager
        self.hierarchy = hierarchy
        self.logger = logging.getLogger(__name__)

    def add_cluster(self, identity: ClusterIdentity) -> ClusterIdentity:
        """
        Register a new cluster with an empty certificate store.

        Raises:
            ValueError: If a cluster with the same name exists
        """
        session = self.db_manager.get_session()
        try:
            record = ClusterRecord(
                name=identity.name,
                namespace=identity.namespace,
                advertise_address=identity.advertise_address,
                service_cidr=identity.service_cidr,
                domain=identity.domain,
                project_id=identity.project_id,
                account=identity.account,
                annotations=json.dumps(dict(identity.annotations or {})),
                certificates=json.dumps({}),
                version=0,
                created_at=datetime.now(),
            )
            session.add(record)
            session.commit()
            self.logger.info(f"Added cluster {identity.name}")
            return record.to_identity()
        except IntegrityError:
            session.rollback()
            raise ValueError(f"Cluster {identity.name} already exists")
        finally:
            session.close()

    def get_cluster(self, name: str) -> ClusterIdentity:
        session = self.db_manager.get_session()
        try:
            return self._get_record(session, name).to_identity()
        finally:
            session.close()

    def list_clusters(self) -> List[str]:
        session = self.db_manager.get_session()
        try:
            return [record.name for record in session.query(ClusterRecord).order_by(ClusterRecord.name)]
        finally:
            session.close()

    def load_store(self, name: str) -> Tuple[CertificateStore, int]:
        """
        Read a cluster's certificate store.

        Returns:
            Tuple of (store, version); pass the version to ``save_store``

        Raises:
            ClusterNotFoundError: If the cluster is unknown
        """
        session = self.db_manager.get_session()
        try:
            record = self._get_record(session, name)
            store = CertificateStore.from_dict(record.certificate_data(), hierarchy=self.hierarchy)
            return store, record.version
        finally:
            session.close()

    def save_store(self, name: str, store: CertificateStore, expected_version: int) -> int:
        """
        Write a certificate store if nobody else wrote it since it was read.

        Args:
            name: Cluster name
            store: Store value to persist
            expected_version: Version returned by ``load_store``

        Returns:
            The new version

        Raises:
            ClusterNotFoundError: If the cluster is unknown
            ConcurrentUpdateError: If the stored version moved on
        """
        session = self.db_manager.get_session()
        try:
            result = session.execute(
                update(ClusterRecord)
                .where(ClusterRecord.name == name)
                .where(ClusterRecord.version == expected_version)
                .values(
                    certificates=json.dumps(store.to_dict()),
                    version=expected_version + 1,
                    updated_at=datetime.now(),
                )
            )
            if result.rowcount != 1:
                session.rollback()
                record = self._get_record(session, name)
                raise ConcurrentUpdateError(name, expected_version, record.version)
            session.commit()
            self.logger.debug(f"Saved certificates of cluster {name} at version {expected_version + 1}")
            return expected_version + 1
        finally:
            session.close()

    def _get_record(self, session, name: str) -> ClusterRecord:
        record = session.query(ClusterRecord).filter(ClusterRecord.name == name).first()
        if record is None:
            raise ClusterNotFoundError(name)
        return record
