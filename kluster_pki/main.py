"""
Command line entry point for the cluster PKI tooling.
Handles configuration, service wiring and the individual subcommands.
"""

import argparse
import json
import os
import signal
import sys
import logging
from typing import Dict, List, Optional

from .exceptions import CertificateEngineError
from .models.cluster import ClusterIdentity, Principal
from .models.database import DatabaseManager
from .services.certificate_service import CertificateService
from .services.cluster_service import ClusterService
from .services.config_service import ConfigService
from .services.file_store import print_store, write_store
from .services.logging_service import LoggingService
from .services.reconcile_scheduler import ReconcileScheduler


class KlusterPKIApplication:
    """Wires configuration, logging, persistence and certificate services together."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the application.

        Args:
            config_path: Path to configuration file (optional)
        """
        self.config_path = config_path or self._get_default_config_path()
        self.logger = logging.getLogger(__name__)
        self.config_service = None
        self.config = None
        self.logging_service = None
        self.db_manager = None
        self.cluster_service = None
        self.certificate_service = None

    def _get_default_config_path(self) -> str:
        possible_paths = [
            "config/kluster_pki.properties",
            "kluster_pki.properties",
            os.path.expanduser("~/.kluster_pki/config.properties"),
            "/etc/kluster_pki/config.properties"
        ]

        for path in possible_paths:
            if os.path.exists(path):
                return path

        return possible_paths[0]

    def initialize(self, console_logging: bool = False) -> bool:
        """
        Load configuration and build all services.

        Returns:
            True if initialization successful, False otherwise
        """
        if not self._load_configuration():
            return False

        try:
            self.logging_service = LoggingService(self.config, console=console_logging)

            db_dir = os.path.dirname(self.config.database_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            self.db_manager = DatabaseManager(self.config.database_path)
            self.db_manager.create_tables()

            self.cluster_service = ClusterService(self.db_manager)
            self.certificate_service = CertificateService(
                self.cluster_service, self.config, logging_service=self.logging_service
            )
        except OSError as e:
            self.logger.error(f"Failed to initialize application: {e}")
            return False

        self.logger.info("Kluster PKI initialized")
        return True

    def _load_configuration(self) -> bool:
        self.config_service = ConfigService()

        if not os.path.exists(self.config_path):
            self.config_service.create_default_config_file(self.config_path)
            print(f"Configuration file not found, created a default one at: {self.config_path}",
                  file=sys.stderr)
            print("Please edit the configuration file and run again", file=sys.stderr)
            return False

        try:
            self.config = self.config_service.load_config(self.config_path)
        except ValueError as e:
            print(f"Failed to load configuration: {e}", file=sys.stderr)
            return False
        return True

    def get_status(self) -> dict:
        return {
            'config_path': self.config_path,
            'database_path': self.config.database_path if self.config else None,
            'domain': self.config.domain if self.config else None,
            'expiry_window_days': self.config.expiry_window_days if self.config else None,
            'clusters': self.cluster_service.list_clusters() if self.cluster_service else [],
        }

    def serve(self, host: str, port: Optional[int], debug: bool):
        from .app import CredentialsApp

        def signal_handler(signum, frame):
            self.logger.info(f"Received {signal.Signals(signum).name} signal, shutting down")
            raise KeyboardInterrupt

        signal.signal(signal.SIGTERM, signal_handler)

        scheduler = ReconcileScheduler(self.certificate_service, self.config.reconcile_interval_minutes)
        flask_app = CredentialsApp(self.config_service, logging_service=self.logging_service,
                                   certificate_service=self.certificate_service, scheduler=scheduler)
        scheduler.run_once()
        scheduler.start()
        try:
            flask_app.run(host=host, port=port, debug=debug)
        except KeyboardInterrupt:
            self.logger.info("Shutdown requested")
        finally:
            scheduler.stop()


def _parse_annotations(values: List[str]) -> Dict[str, str]:
    annotations = {}
    for value in values or []:
        key, sep, content = value.partition('=')
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Annotation must be KEY=VALUE: {value}")
        annotations[key] = content
    return annotations


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='kluster-pki', description='Cluster PKI management')
    parser.add_argument('--config', '-c', help='Configuration file path')
    parser.add_argument('--check-config', action='store_true', help='Check configuration and exit')

    subparsers = parser.add_subparsers(dest='command')

    add = subparsers.add_parser('add-cluster', help='Register a cluster')
    add.add_argument('name')
    add.add_argument('--namespace', default='kube-system')
    add.add_argument('--advertise-address', required=True)
    add.add_argument('--service-cidr', required=True)
    add.add_argument('--domain', help='Cluster domain (defaults to the configured domain)')
    add.add_argument('--project-id', default='')
    add.add_argument('--account', default='')
    add.add_argument('--annotation', action='append', default=[], metavar='KEY=VALUE')

    ensure = subparsers.add_parser('ensure', help='Create or rotate the certificates of a cluster')
    ensure.add_argument('name')

    files = subparsers.add_parser('files', help='Write the certificates of a cluster to a directory')
    files.add_argument('name')
    files.add_argument('--output', '-o', required=True)

    plain = subparsers.add_parser('plain', help='Print the certificates of a cluster')
    plain.add_argument('name')

    inspect = subparsers.add_parser('inspect', help='Show certificate details of a cluster')
    inspect.add_argument('name')

    credentials = subparsers.add_parser('credentials', help='Issue a user kubeconfig')
    credentials.add_argument('name')
    credentials.add_argument('--user', required=True)
    credentials.add_argument('--user-domain', default='')
    credentials.add_argument('--group', action='append', default=[])
    credentials.add_argument('--role', action='append', default=[])
    credentials.add_argument('--project-id', default='')

    serve = subparsers.add_parser('serve', help='Run the credentials API')
    serve.add_argument('--host', default='0.0.0.0')
    serve.add_argument('--port', type=int, help='Port to bind to (uses config if not specified)')
    serve.add_argument('--debug', action='store_true')

    return parser


def run_command(app: KlusterPKIApplication, args) -> int:
    """Execute one subcommand; returns the process exit code."""
    if args.command == 'add-cluster':
        identity = ClusterIdentity(
            name=args.name,
            namespace=args.namespace,
            advertise_address=args.advertise_address,
            service_cidr=args.service_cidr,
            domain=args.domain or app.config.domain,
            project_id=args.project_id,
            account=args.account,
            annotations=_parse_annotations(args.annotation),
        )
        app.cluster_service.add_cluster(identity)
        print(f"Added cluster {identity.name}")

    elif args.command == 'ensure':
        updates = app.certificate_service.reconcile(args.name)
        for update in updates:
            print(update)
        print(f"{len(updates)} certificates created or rotated")

    elif args.command == 'files':
        store, _ = app.cluster_service.load_store(args.name)
        for path in write_store(store, args.output):
            print(path)

    elif args.command == 'plain':
        store, _ = app.cluster_service.load_store(args.name)
        print_store(store)

    elif args.command == 'inspect':
        print(json.dumps(app.certificate_service.certificate_infos(args.name), indent=2))

    elif args.command == 'credentials':
        principal = Principal(
            name=args.user,
            domain=args.user_domain,
            groups=args.group,
            roles=args.role,
            account=args.project_id,
        )
        print(app.certificate_service.issue_credentials(args.name, principal), end='')

    elif args.command == 'serve':
        app.serve(args.host, args.port, args.debug)

    return 0


def main(argv: Optional[List[str]] = None):
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.check_config and not args.command:
        parser.print_help()
        sys.exit(2)

    app = KlusterPKIApplication(config_path=args.config)
    if not app.initialize(console_logging=args.command == 'serve'):
        sys.exit(1)

    if args.check_config:
        status = app.get_status()
        print("Configuration check passed")
        print(f"Config path: {status['config_path']}")
        print(f"Database path: {status['database_path']}")
        print(f"Domain: {status['domain']}")
        print(f"Expiry window: {status['expiry_window_days']} days")
        print(f"Clusters: {len(status['clusters'])}")
        sys.exit(0)

    try:
        code = run_command(app, args)
    except (CertificateEngineError, ValueError, OSError, argparse.ArgumentTypeError) as e:
        app.logger.error(f"Command {args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == '__main__':
    main()
