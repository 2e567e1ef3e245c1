"""
Database models and connection management for stored cluster certificates.
"""

import json
import os
from typing import Dict

from sqlalchemy import create_engine, Column, Integer, String, DateTime, Text
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.sql import func

from .cluster import ClusterIdentity

Base = declarative_base()


class ClusterRecord(Base):
    """A managed cluster together with its certificate store."""

    __tablename__ = 'clusters'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False)
    namespace = Column(String(255), nullable=False)
    advertise_address = Column(String(64), nullable=False)
    service_cidr = Column(String(64), nullable=False)
    domain = Column(String(255), nullable=False)
    project_id = Column(String(255), nullable=False, default="")
    account = Column(String(255), nullable=False, default="")
    annotations = Column(Text, nullable=False, default="{}")
    certificates = Column(Text, nullable=False, default="{}")
    # bumped on every certificate write, used for compare-and-swap saves
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, nullable=True)

    def to_identity(self) -> ClusterIdentity:
        return ClusterIdentity(
            name=self.name,
            namespace=self.namespace,
            advertise_address=self.advertise_address,
            service_cidr=self.service_cidr,
            domain=self.domain,
            project_id=self.project_id or "",
            account=self.account or "",
            annotations=json.loads(self.annotations or "{}"),
        )

    def certificate_data(self) -> Dict[str, str]:
        return json.loads(self.certificates or "{}")

    def __repr__(self):
        return f"<ClusterRecord(id={self.id}, name='{self.name}', version={self.version})>"


class DatabaseManager:
    """Database connection and initialization manager."""

    def __init__(self, database_url: str = None):
        """
        Initialize database manager.

        Args:
            database_url: Database connection URL. If None, uses SQLite with default path.
        """
        if database_url is None:
            data_dir = os.path.join(os.getcwd(), 'data')
            os.makedirs(data_dir, exist_ok=True)
            database_url = f"sqlite:///{os.path.join(data_dir, 'clusters.db')}"
        elif not database_url.startswith(('sqlite://', 'postgresql://', 'mysql://')):
            # Assume it's a file path for SQLite
            database_url = f"sqlite:///{database_url}"

        self.database_url = database_url
        self.engine = create_engine(database_url, echo=False)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self):
        """Create all database tables."""
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()


def get_database_manager(database_url: str = None) -> DatabaseManager:
    """
    Factory function to get a database manager instance with tables created.

    Args:
        database_url: Database connection URL or SQLite file path

    Returns:
        DatabaseManager instance
    """
    manager = DatabaseManager(database_url)
    manager.create_tables()
    return manager
