"""
Exception types raised by the certificate lifecycle engine and its consumers.
"""


class CertificateEngineError(Exception):
    """Base class for all certificate engine errors."""


class ParseError(CertificateEngineError):
    """Malformed PEM or non-RSA key found in a store slot."""


class ConfigurationError(CertificateEngineError):
    """Cluster identity cannot be turned into a certificate hierarchy."""


class SigningPreconditionError(CertificateEngineError):
    """Attempt to sign with a bundle that is not a certificate authority."""


class ConcurrentUpdateError(CertificateEngineError):
    """The stored certificate map changed since it was read."""

    def __init__(self, cluster_name: str, expected_version: int, actual_version: int):
        self.cluster_name = cluster_name
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Certificates of cluster {cluster_name} were modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )


class ClusterNotFoundError(CertificateEngineError):
    """No cluster with the given name is known to the store."""

    def __init__(self, cluster_name: str):
        self.cluster_name = cluster_name
        super().__init__(f"Cluster not found: {cluster_name}")
