"""Pytest configuration and fixtures."""
import os
from unittest.mock import patch

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from utils.config import DomainServiceSettings

SYNC_SECRET = "test-sync-secret"
PASSWORD = "password123"

SEED_DOMAINS = [
    ('jobfinder', 'Job Finder'),
    ('ccms', 'CCMS'),
    ('solucomp', 'Solucomp'),
    ('solucomp_cop', 'Solucomp COP'),
    ('solucomp_compare', 'Solucomp Compare'),
]


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables for all tests."""
    test_env_vars = {
        "SECRET_KEY": "test-secret-key-for-testing",
        "FLASK_ENV": "testing",
        "DATABASE_URL": "sqlite://",
        "LOG_LEVEL": "WARNING",
    }

    for key, value in test_env_vars.items():
        os.environ[key] = value

    yield

    for key in test_env_vars:
        os.environ.pop(key, None)


@pytest.fixture(autouse=True)
def block_outbound_http():
    """Downstream domains are unreachable unless a test mocks the client."""
    with patch('requests.Session.request', side_effect=requests.ConnectionError("blocked in tests")):
        yield


@pytest.fixture(scope="session")
def rsa_keys():
    """A throwaway RS256 key pair as PEM strings."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode('utf-8')
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode('utf-8')
    return {'private': private_pem, 'public': public_pem}


@pytest.fixture
def domain_settings():
    return DomainServiceSettings(
        base_urls={
            'ccms': 'http://ccms.test',
            'jobfinder': 'http://jobfinder.test',
            'solucomp': 'http://solucomp.test',
        },
        update_sync_routes={
            'ccms': 'http://ccms.test/api/auth-sync',
            'jobfinder': 'http://jobfinder.test/api/auth-sync',
            'solucomp': 'http://solucomp.test/api/auth-sync',
        },
        new_user_sync_routes={'jobfinder': 'http://jobfinder.test/api/new-user'},
        delete_user_routes={'ccms': 'http://ccms.test/api/users'},
        page_permissions_url='http://solucomp.test/api/user-page-permissions',
        page_permission_sync_url='http://solucomp.test/api/page-permission',
    )


@pytest.fixture
def app(rsa_keys, domain_settings):
    """Application bound to an in-memory database with inline propagation."""
    from authcenter import create_app
    from models import db

    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'JWT_PRIVATE_KEY': rsa_keys['private'],
        'JWT_PUBLIC_KEY': rsa_keys['public'],
        'BCRYPT_LOG_ROUNDS': 4,
        'CACHE_TYPE': 'SimpleCache',
        'RATELIMIT_STORAGE_URI': 'memory://',
        'PROPAGATION_MODE': 'inline',
        'SYNC_SECRET': SYNC_SECRET,
        'SSO_SHARED_TOKEN': 'shared-token',
        'DOMAIN_SERVICES': domain_settings,
        'LOCKOUT_POLICY': 'standard',
        'ENFORCE_2FA_LOGIN_DEFAULT': False,
    })

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def domains(app):
    """Seeded domains keyed by domain key."""
    from models import db
    from models.domain import Domain

    created = {}
    for key, name in SEED_DOMAINS:
        domain = Domain(key=key, name=name, url=f'http://{key}.test')
        db.session.add(domain)
        created[key] = domain
    db.session.commit()
    return created


@pytest.fixture
def make_user(app, domains):
    """Factory for persisted users; attaches the named domains."""
    from models import db
    from models.oauth_client import OAuthClient
    from models.user import User

    def _make(email='user@example.com', password=PASSWORD, role='user', is_approved=True,
              status='active', domain_keys=('jobfinder',), **fields):
        user = User(
            email=email,
            first_name=fields.pop('first_name', 'Test'),
            last_name=fields.pop('last_name', 'User'),
            role=role,
            is_approved=is_approved,
            status=status,
            **fields,
        )
        user.set_password(password)
        user.domains = [domains[key] for key in domain_keys]
        db.session.add(user)
        db.session.flush()
        OAuthClient.register_for(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email='admin@example.com', role='admin', domain_keys=())


@pytest.fixture
def token_for(app):
    """Issue an access token for a user."""
    from authcenter.services.token_service import TokenService

    def _issue(user, **claims):
        claims.update({'sub': user.uuid, 'email': user.email})
        return TokenService().issue(claims)

    return _issue


@pytest.fixture
def auth_headers(token_for):
    def _headers(user):
        return {'Authorization': f'Bearer {token_for(user)}'}

    return _headers
