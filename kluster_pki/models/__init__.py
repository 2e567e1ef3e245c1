"""
Models package for the cluster PKI.
"""

from .cluster import ClusterIdentity, Principal, CertKind, CertUpdate
from .database import ClusterRecord, DatabaseManager, get_database_manager
from .hierarchy import DEFAULT_HIERARCHY, Hierarchy, Authority, ClientCertificate, ServerCertificate
from .store import CertificateStore

__all__ = [
    'ClusterIdentity',
    'Principal',
    'CertKind',
    'CertUpdate',
    'ClusterRecord',
    'DatabaseManager',
    'get_database_manager',
    'DEFAULT_HIERARCHY',
    'Hierarchy',
    'Authority',
    'ClientCertificate',
    'ServerCertificate',
    'CertificateStore'
]
