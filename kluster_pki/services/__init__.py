"""
Services package for the cluster PKI.
"""

from .certificate_factory import CertificateFactory, EnsureResult, ensure_certificates
from .certificate_service import CertificateService
from .cluster_service import ClusterService
from .config_service import ConfigService

__all__ = [
    'CertificateFactory',
    'EnsureResult',
    'ensure_certificates',
    'CertificateService',
    'ClusterService',
    'ConfigService'
]
