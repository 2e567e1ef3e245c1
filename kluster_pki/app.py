"""
Flask application serving cluster credentials and certificate status.
"""
from flask import Flask, jsonify, g
import logging
from typing import Optional
from datetime import datetime

from .exceptions import (
    CertificateEngineError, ClusterNotFoundError, ConcurrentUpdateError, ConfigurationError,
)
from .models.database import get_database_manager
from .security.auth_middleware import setup_keystone_authentication, require_authentication
from .services.certificate_service import CertificateService
from .services.cluster_service import ClusterService
from .services.config_service import ConfigService
from .services.reconcile_scheduler import ReconcileScheduler


class CredentialsApp:
    """Flask application behind a Keystone authenticating proxy."""

    def __init__(self, config_service: ConfigService, logging_service=None,
                 certificate_service: Optional[CertificateService] = None,
                 scheduler: Optional[ReconcileScheduler] = None):
        """
        Initialize the application.

        Args:
            config_service: Service holding the loaded configuration
            logging_service: Optional LoggingService for health and timing data
            certificate_service: Prebuilt service, created from the configured
                database when omitted
            scheduler: Optional background reconcile scheduler reported by /health
        """
        self.app = Flask(__name__)
        self.config_service = config_service
        self.config = config_service.get_config()
        self.logging_service = logging_service
        self.logger = logging.getLogger(__name__)

        if certificate_service is None:
            db_manager = get_database_manager(self.config.database_path)
            certificate_service = CertificateService(
                ClusterService(db_manager), self.config, logging_service=logging_service
            )
        self.certificate_service = certificate_service
        self.scheduler = scheduler

        setup_keystone_authentication(self.app)

        self._setup_routes()
        self._setup_error_handlers()
        self._setup_security_headers()

    def _setup_routes(self):
        """Set up API routes."""

        @self.app.route('/health', methods=['GET'])
        def health_check():
            health_status = {
                'status': 'healthy',
                'service': 'kluster-pki',
                'timestamp': datetime.now().isoformat()
            }
            if self.logging_service:
                health_status['logging'] = self.logging_service.get_health_status()
            if self.scheduler:
                health_status['reconcile'] = self.scheduler.get_stats()
            return jsonify(health_status)

        @self.app.route('/api/clusters/<name>/credentials', methods=['POST'])
        @require_authentication
        def get_credentials(name):
            """Issue a short-lived kubeconfig for the calling user."""
            principal = g.principal
            kubeconfig = self.certificate_service.issue_credentials(name, principal)
            self.logger.info(f"Handed out credentials of cluster {name} to {principal.name}")
            return jsonify({'kubeconfig': kubeconfig})

        @self.app.route('/api/clusters/<name>/certificates', methods=['GET'])
        @require_authentication
        def get_certificates(name):
            certificates = self.certificate_service.certificate_infos(name)
            return jsonify({
                'cluster': name,
                'certificates': certificates,
                'count': len(certificates)
            })

        @self.app.route('/api/clusters/<name>/ensure', methods=['POST'])
        @require_authentication
        def ensure_certificates(name):
            """Reconcile the cluster PKI and return what changed."""
            updates = self.certificate_service.reconcile(name)
            return jsonify({
                'cluster': name,
                'updates': [update.to_dict() for update in updates],
                'count': len(updates)
            })

    def _setup_error_handlers(self):
        """Set up error handlers."""

        @self.app.errorhandler(ClusterNotFoundError)
        def cluster_not_found(error):
            return jsonify({
                'error': 'Not found',
                'message': str(error)
            }), 404

        @self.app.errorhandler(ConfigurationError)
        def invalid_configuration(error):
            return jsonify({
                'error': 'Invalid cluster configuration',
                'message': str(error)
            }), 400

        @self.app.errorhandler(ConcurrentUpdateError)
        def concurrent_update(error):
            return jsonify({
                'error': 'Conflict',
                'message': str(error)
            }), 409

        @self.app.errorhandler(CertificateEngineError)
        def certificate_error(error):
            self.logger.error(f"Certificate error: {error}")
            return jsonify({
                'error': 'Certificate error',
                'message': str(error)
            }), 500

        @self.app.errorhandler(404)
        def not_found(error):
            return jsonify({
                'error': 'Not found',
                'message': 'The requested endpoint does not exist'
            }), 404

        @self.app.errorhandler(405)
        def method_not_allowed(error):
            return jsonify({
                'error': 'Method not allowed',
                'message': 'The requested method is not allowed for this endpoint'
            }), 405

        @self.app.errorhandler(500)
        def internal_error(error):
            self.logger.error(f"Internal server error: {error}")
            return jsonify({
                'error': 'Internal server error',
                'message': 'An unexpected error occurred'
            }), 500

    def _setup_security_headers(self):

        @self.app.after_request
        def add_security_headers(response):
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
            response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
            response.headers['X-Content-Type-Options'] = 'nosniff'
            response.headers['X-Frame-Options'] = 'DENY'
            # credentials must never end up in a shared cache
            response.headers['Cache-Control'] = 'no-store'
            response.headers.pop('Server', None)
            return response

    def run(self, host: str = '0.0.0.0', port: Optional[int] = None, debug: bool = False):
        """Run the development server; TLS is terminated by the fronting proxy."""
        if port is None:
            port = self.config.api_port
        self.logger.info(f"Starting credentials API on http://{host}:{port}")
        self.app.run(host=host, port=port, debug=debug)

    def get_app(self) -> Flask:
        """Get the Flask application instance."""
        return self.app
