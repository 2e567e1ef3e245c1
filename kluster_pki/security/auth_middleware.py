"""
Authentication middleware reading the Keystone identity headers set by an authenticating proxy.
"""
import logging
from functools import wraps
from typing import List, Optional

from flask import request, g, jsonify

from ..models.cluster import Principal

# WSGI environ keys of the identity headers
USER_NAME = 'HTTP_X_USER_NAME'
USER_DOMAIN_NAME = 'HTTP_X_USER_DOMAIN_NAME'
USER_ID = 'HTTP_X_USER_ID'
PROJECT_ID = 'HTTP_X_PROJECT_ID'
PROJECT_NAME = 'HTTP_X_PROJECT_NAME'
ROLES = 'HTTP_X_ROLES'
GROUPS = 'HTTP_X_GROUPS'

ANONYMOUS_ENDPOINTS = ('health_check',)


def _split(value: Optional[str]) -> List[str]:
    return [item.strip() for item in (value or '').split(',') if item.strip()]


def principal_from_environ(environ) -> Optional[Principal]:
    """Build the principal from the identity headers, None when no user is set."""
    name = (environ.get(USER_NAME) or '').strip()
    if not name:
        return None
    return Principal(
        name=name,
        domain=(environ.get(USER_DOMAIN_NAME) or '').strip(),
        groups=_split(environ.get(GROUPS)),
        roles=_split(environ.get(ROLES)),
        id=(environ.get(USER_ID) or '').strip(),
        account=(environ.get(PROJECT_ID) or '').strip(),
        account_name=(environ.get(PROJECT_NAME) or '').strip(),
    )


class KeystoneAuthMiddleware:
    """WSGI middleware storing the request principal in the environment."""

    def __init__(self, app):
        self.app = app
        self.logger = logging.getLogger(__name__)

        self.wsgi_app = app.wsgi_app
        app.wsgi_app = self

    def __call__(self, environ, start_response):
        principal = principal_from_environ(environ)
        environ['keystone.principal'] = principal
        if principal:
            self.logger.debug(f"Request by {principal.name}@{principal.domain} "
                              f"in project {principal.account or '-'}")
        return self.wsgi_app(environ, start_response)


def setup_keystone_authentication(app):
    """Set up header based authentication for Flask app."""

    KeystoneAuthMiddleware(app)

    @app.before_request
    def authenticate_request():
        # unknown routes fall through to the 404 handler
        if request.endpoint is None or request.endpoint in ANONYMOUS_ENDPOINTS:
            g.principal = None
            g.authenticated = True
            return

        principal = request.environ.get('keystone.principal')
        if principal is None:
            return jsonify({
                'error': 'Authentication required',
                'message': 'Missing X-User-Name header'
            }), 401

        g.principal = principal
        g.authenticated = True

    return app


def require_authentication(f):
    """Decorator to require an authenticated principal for specific endpoints."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if getattr(g, 'principal', None) is None:
            return jsonify({
                'error': 'Authentication required',
                'message': 'This endpoint requires an authenticated user'
            }), 401
        return f(*args, **kwargs)
    return decorated_function
