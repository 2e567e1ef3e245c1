"""
Tests for the Keystone header authentication middleware.
"""
import unittest

from flask import Flask, g, jsonify

from kluster_pki.models.cluster import Principal
from kluster_pki.security.auth_middleware import (
    KeystoneAuthMiddleware, principal_from_environ, require_authentication, setup_keystone_authentication,
)


class TestPrincipalFromEnviron(unittest.TestCase):
    """Test cases for reading identity headers."""

    def test_full_headers(self):
        environ = {
            'HTTP_X_USER_NAME': 'alice',
            'HTTP_X_USER_DOMAIN_NAME': 'example',
            'HTTP_X_USER_ID': 'u-1',
            'HTTP_X_PROJECT_ID': 'p-1',
            'HTTP_X_PROJECT_NAME': 'demo',
            'HTTP_X_ROLES': 'admin, member',
            'HTTP_X_GROUPS': 'dev,,ops',
        }
        self.assertEqual(principal_from_environ(environ), Principal(
            name='alice', domain='example', groups=['dev', 'ops'], roles=['admin', 'member'],
            id='u-1', account='p-1', account_name='demo',
        ))

    def test_only_user_name(self):
        principal = principal_from_environ({'HTTP_X_USER_NAME': 'bob'})
        self.assertEqual(principal.name, 'bob')
        self.assertEqual(principal.groups, [])
        self.assertEqual(principal.domain, '')

    def test_missing_user_name(self):
        self.assertIsNone(principal_from_environ({}))
        self.assertIsNone(principal_from_environ({'HTTP_X_USER_NAME': '  ', 'HTTP_X_ROLES': 'admin'}))


class TestKeystoneAuthentication(unittest.TestCase):
    """Test cases for the request hooks."""

    def setUp(self):
        self.app = Flask(__name__)
        setup_keystone_authentication(self.app)

        @self.app.route('/health')
        def health_check():
            return jsonify({'status': 'ok'})

        @self.app.route('/whoami')
        @require_authentication
        def whoami():
            return jsonify({'name': g.principal.name, 'roles': g.principal.roles})

        self.client = self.app.test_client()

    def test_middleware_is_installed(self):
        self.assertIsInstance(self.app.wsgi_app, KeystoneAuthMiddleware)

    def test_authenticated_request(self):
        response = self.client.get('/whoami', headers={'X-User-Name': 'alice', 'X-Roles': 'admin'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json(), {'name': 'alice', 'roles': ['admin']})

    def test_missing_header(self):
        response = self.client.get('/whoami')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()['message'], 'Missing X-User-Name header')

    def test_health_is_anonymous(self):
        self.assertEqual(self.client.get('/health').status_code, 200)

    def test_unknown_route_is_not_found(self):
        self.assertEqual(self.client.get('/nope').status_code, 404)

    def test_require_authentication_without_principal(self):
        app = Flask(__name__)

        @app.route('/secret')
        @require_authentication
        def secret():
            return 'secret'

        response = app.test_client().get('/secret')
        self.assertEqual(response.status_code, 401)


if __name__ == '__main__':
    unittest.main()
