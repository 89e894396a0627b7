"""
Identity Gateway.

The identity provider owns users and their custom claims; the loyalty
service only asks three questions (does this user exist, what is their
email, are they an admin) and, for elevation, merges claims.

Backends:
    HttpIdentityGateway      the real provider over HTTPS, bounded timeout
    InMemoryIdentityGateway  local development and tests
"""
import copy
import logging
import threading
from typing import Any, Dict, Optional

import requests
from flask import current_app

from ..utils.exceptions import InternalError

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'loyalty_identity_gateway'


class IdentityGateway:
    """Read-mostly view of the identity provider."""

    def get_user(self, uid: str) -> Optional[Dict[str, Any]]:
        """Return ``{uid, email, custom_claims}`` or None if unknown."""
        raise NotImplementedError

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``claims`` into the user's custom claims and return the result."""
        raise NotImplementedError

    def user_exists(self, uid: str) -> bool:
        return self.get_user(uid) is not None

    def get_email(self, uid: str) -> Optional[str]:
        user = self.get_user(uid)
        return user.get('email') if user else None

    def is_admin(self, uid: str) -> bool:
        user = self.get_user(uid)
        if not user:
            return False
        return has_admin_claims(user.get('custom_claims') or {})


def has_admin_claims(claims: Dict[str, Any]) -> bool:
    return claims.get('admin') is True or claims.get('role') == 'admin'


class InMemoryIdentityGateway(IdentityGateway):
    """
    Dictionary-backed directory.

    Seeded from IDENTITY_USERS, e.g.
        {'alice-uid': {'email': 'alice@example.com', 'custom_claims': {'admin': True}}}
    """

    def __init__(self, users: Dict[str, Dict[str, Any]] = None):
        self._lock = threading.Lock()
        self._users = {}
        for uid, data in (users or {}).items():
            self.add_user(uid, **data)

    def add_user(self, uid: str, email: str = None, custom_claims: Dict[str, Any] = None) -> None:
        with self._lock:
            self._users[uid] = {
                'uid': uid,
                'email': email,
                'custom_claims': dict(custom_claims or {}),
            }

    def get_user(self, uid: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            user = self._users.get(uid)
            return copy.deepcopy(user) if user else None

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            user = self._users.get(uid)
            if user is None:
                raise KeyError(uid)
            user['custom_claims'].update(claims)
            return dict(user['custom_claims'])


class HttpIdentityGateway(IdentityGateway):
    """
    Client for the identity provider's admin API.

        GET  {base}/users/{uid}          -> 200 {uid, email, customClaims} | 404
        POST {base}/users/{uid}/claims   -> 200 {customClaims}
    """

    def __init__(self, base_url: str, token: str = None, timeout: float = 5.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        if token:
            self.session.headers['Authorization'] = f'Bearer {token}'

    def get_user(self, uid: str) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.get(f'{self.base_url}/users/{uid}', timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f'Identity lookup failed for {uid}: {e}')
            raise InternalError('Identity service unavailable')

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            logger.error(f'Identity lookup for {uid} returned {response.status_code}')
            raise InternalError('Identity service unavailable')

        data = response.json()
        return {
            'uid': data.get('uid', uid),
            'email': data.get('email'),
            'custom_claims': data.get('customClaims') or data.get('custom_claims') or {},
        }

    def set_custom_claims(self, uid: str, claims: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                f'{self.base_url}/users/{uid}/claims',
                json={'customClaims': claims, 'merge': True},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f'Setting claims for {uid} failed: {e}')
            raise InternalError('Identity service unavailable')
        return response.json().get('customClaims', claims)


def init_identity_gateway(app) -> IdentityGateway:
    backend = app.config.get('IDENTITY_BACKEND', 'memory')
    if backend == 'http':
        base_url = app.config.get('IDENTITY_SERVICE_URL')
        if not base_url:
            raise RuntimeError('IDENTITY_SERVICE_URL is required when IDENTITY_BACKEND=http')
        gateway = HttpIdentityGateway(
            base_url,
            token=app.config.get('IDENTITY_SERVICE_TOKEN'),
            timeout=app.config.get('IDENTITY_TIMEOUT_SECONDS', 5.0),
        )
    else:
        gateway = InMemoryIdentityGateway(app.config.get('IDENTITY_USERS') or {})
    app.extensions[EXTENSION_KEY] = gateway
    return gateway


def get_identity_gateway() -> IdentityGateway:
    return current_app.extensions[EXTENSION_KEY]
