"""
Configuration service for loading and validating application settings.
"""
import os
import configparser
from datetime import timedelta
from typing import Optional, Dict, Any
import logging

from ..models.config import Config, ConfigValidationError, ConfigValidationResult
from ..security.signing import DEFAULT_CERT_VALIDITY


class ConfigService:
    """Service for loading and validating application configuration."""

    def __init__(self, config_path: Optional[str] = None):
        self.logger = logging.getLogger(__name__)
        self._config = None
        if config_path:
            self._config = self.load_config(config_path)

    def get_config(self) -> Config:
        """
        Get the loaded configuration.

        Returns:
            Config object

        Raises:
            ValueError: If no configuration has been loaded
        """
        if self._config is None:
            raise ValueError("No configuration loaded. Call load_config() first.")
        return self._config

    def load_config(self, config_path: str) -> Config:
        """
        Load configuration from a property file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Config object with loaded settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid or has validation errors
        """
        if not os.path.exists(config_path):
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        config_data = self._load_config_file(config_path)
        config = self._create_config_from_data(config_data)

        validation_result = self.validate_config(config)

        if validation_result.has_errors():
            error_summary = validation_result.get_error_summary()
            raise ValueError(f"Configuration validation failed:\n{error_summary}")

        if validation_result.has_warnings():
            warning_summary = validation_result.get_error_summary()
            self.logger.warning(f"Configuration warnings:\n{warning_summary}")

        self._config = config
        return config

    def _load_config_file(self, config_path: str) -> Dict[str, Any]:
        """Load configuration data from file."""
        config_parser = configparser.ConfigParser()

        try:
            config_parser.read(config_path)
        except configparser.Error as e:
            raise ValueError(f"Failed to parse configuration file: {e}")

        # Flatten to section.key
        config_data = {}
        for section in config_parser.sections():
            for key, value in config_parser.items(section):
                config_data[f"{section}.{key}"] = value

        for key, value in config_parser.defaults().items():
            if key not in config_data:
                config_data[key] = value

        return config_data

    def _create_config_from_data(self, config_data: Dict[str, Any]) -> Config:
        """Create Config object from configuration data."""
        config_mapping = {
            # Database settings
            "database.path": ("database_path", str),
            "database_path": ("database_path", str),

            # PKI settings
            "pki.domain": ("domain", str),
            "domain": ("domain", str),
            "pki.expiry_window_days": ("expiry_window_days", int),
            "expiry_window_days": ("expiry_window_days", int),
            "pki.user_cert_validity_hours": ("user_cert_validity_hours", int),
            "user_cert_validity_hours": ("user_cert_validity_hours", int),

            # API settings
            "api.api_url": ("api_url", str),
            "api_url": ("api_url", str),
            "api.auth_url": ("auth_url", str),
            "auth_url": ("auth_url", str),
            "api.port": ("api_port", int),
            "api_port": ("api_port", int),

            # Reconcile settings
            "reconcile.max_retry_attempts": ("max_retry_attempts", int),
            "max_retry_attempts": ("max_retry_attempts", int),
            "reconcile.interval_minutes": ("reconcile_interval_minutes", int),
            "reconcile_interval_minutes": ("reconcile_interval_minutes", int),

            # Application settings
            "app.log_level": ("log_level", str),
            "log_level": ("log_level", str),
            "app.log_file_path": ("log_file_path", str),
            "log_file_path": ("log_file_path", str),
        }

        config_kwargs = {}

        for config_key, raw_value in config_data.items():
            if config_key in config_mapping:
                field_name, field_type = config_mapping[config_key]
                try:
                    if field_type == int:
                        value = int(raw_value)
                    else:
                        value = str(raw_value).strip() if raw_value is not None else ""
                    config_kwargs[field_name] = value
                except (ValueError, TypeError) as e:
                    raise ValueError(f"Invalid value for {config_key}: {raw_value} ({e})")

        if "log_level" in config_kwargs:
            config_kwargs["log_level"] = config_kwargs["log_level"].upper()

        return Config(**config_kwargs)

    def validate_config(self, config: Config) -> ConfigValidationResult:
        """
        Validate configuration settings.

        Args:
            config: Configuration object to validate

        Returns:
            ConfigValidationResult with validation results
        """
        errors = []
        warnings = []

        if not config.domain:
            errors.append(ConfigValidationError(
                "domain",
                "Cluster domain is required to build server certificate names"
            ))

        if timedelta(days=config.expiry_window_days) >= DEFAULT_CERT_VALIDITY:
            errors.append(ConfigValidationError(
                "expiry_window_days",
                f"Expiry window must be shorter than the certificate validity "
                f"of {DEFAULT_CERT_VALIDITY.days} days"
            ))

        if not config.api_url:
            warnings.append(ConfigValidationError(
                "api_url",
                "API URL is empty, user certificates will carry no locality",
                "warning"
            ))

        if not config.auth_url:
            warnings.append(ConfigValidationError(
                "auth_url",
                "Auth URL is empty, user certificates will carry only the project id",
                "warning"
            ))

        if config.database_path:
            db_dir = os.path.dirname(config.database_path)
            if db_dir and not os.path.exists(db_dir):
                warnings.append(ConfigValidationError(
                    "database_path",
                    f"Database directory does not exist: {db_dir}",
                    "warning"
                ))

        if config.log_file_path:
            log_dir = os.path.dirname(config.log_file_path)
            if log_dir and not os.path.exists(log_dir):
                warnings.append(ConfigValidationError(
                    "log_file_path",
                    f"Log directory does not exist: {log_dir}",
                    "warning"
                ))

        all_issues = errors + warnings
        return ConfigValidationResult(
            is_valid=len(errors) == 0,
            errors=all_issues,
            warnings=[]
        )

    def create_default_config_file(self, config_path: str) -> None:
        """
        Create a default configuration file with example settings.

        Args:
            config_path: Path where to create the config file
        """
        config_content = """# Kluster PKI Configuration File

[database]
path = data/clusters.db

[pki]
domain = kubernetes.example.com
expiry_window_days = 90
user_cert_validity_hours = 24

[api]
api_url = https://kluster-pki.example.com
auth_url = https://identity.example.com/v3
port = 5000

[reconcile]
max_retry_attempts = 3
interval_minutes = 60

[app]
log_level = INFO
log_file_path = logs/kluster_pki.log
"""

        config_dir = os.path.dirname(config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)

        with open(config_path, 'w') as f:
            f.write(config_content)

        self.logger.info(f"Created default configuration file: {config_path}")
