"""
Configuration data models for the certificate engine application.
"""
from dataclasses import dataclass


@dataclass
class Config:
    """Main configuration class containing all application settings."""

    # Database settings
    database_path: str = "data/clusters.db"

    # PKI settings
    domain: str = ""
    expiry_window_days: int = 90
    user_cert_validity_hours: int = 24

    # API settings
    api_url: str = ""
    auth_url: str = ""
    api_port: int = 5000

    # Reconcile settings
    max_retry_attempts: int = 3
    reconcile_interval_minutes: int = 60

    # Application settings
    log_level: str = "INFO"
    log_file_path: str = "logs/kluster_pki.log"

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_types()

    def _validate_types(self):
        """Ensure all configuration values have correct types."""
        if not isinstance(self.expiry_window_days, int) or self.expiry_window_days <= 0:
            raise ValueError("expiry_window_days must be a positive integer")

        if not isinstance(self.user_cert_validity_hours, int) or self.user_cert_validity_hours <= 0:
            raise ValueError("user_cert_validity_hours must be a positive integer")

        if not isinstance(self.max_retry_attempts, int) or self.max_retry_attempts < 1:
            raise ValueError("max_retry_attempts must be a positive integer")

        if not isinstance(self.reconcile_interval_minutes, int) or self.reconcile_interval_minutes < 1:
            raise ValueError("reconcile_interval_minutes must be a positive integer")

        if not isinstance(self.api_port, int) or not (1 <= self.api_port <= 65535):
            raise ValueError("api_port must be an integer between 1 and 65535")

        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")


@dataclass
class ConfigValidationError:
    """Represents a configuration validation error."""
    field: str
    message: str
    severity: str = "error"  # error, warning

    def __str__(self):
        return f"{self.severity.upper()}: {self.field} - {self.message}"


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: list[ConfigValidationError]
    warnings: list[ConfigValidationError]

    def __post_init__(self):
        """Separate errors and warnings."""
        all_issues = self.errors + self.warnings
        self.errors = [e for e in all_issues if e.severity == "error"]
        self.warnings = [e for e in all_issues if e.severity == "warning"]

    def has_errors(self) -> bool:
        """Check if there are any validation errors."""
        return len(self.errors) > 0

    def has_warnings(self) -> bool:
        """Check if there are any validation warnings."""
        return len(self.warnings) > 0

    def get_error_summary(self) -> str:
        """Get a formatted summary of all errors and warnings."""
        lines = []

        if self.errors:
            lines.append("Configuration Errors:")
            for error in self.errors:
                lines.append(f"  - {error}")

        if self.warnings:
            lines.append("Configuration Warnings:")
            for warning in self.warnings:
                lines.append(f"  - {warning}")

        return "\n".join(lines) if lines else "Configuration is valid"
