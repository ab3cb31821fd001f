"""
Pytest fixtures for telecom operations backend tests.

Provides the app on an in-memory database, a per-test table wipe, staff
and catalog factories, and bearer-token helpers for route tests.
"""

import pytest

from telecom_ops import create_app
from telecom_ops.extensions import db
from telecom_ops.models import Article, Client, User
from telecom_ops.models.auth import ROLE_ADVISOR, ROLE_AGENT, ROLE_CONTROLLER, ROLE_DIRECTOR
from telecom_ops.permissions import Actor
from telecom_ops.services.auth_service import hash_password


TEST_PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'BCRYPT_ROUNDS': 4,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: committed User with the shared test password."""
    counter = {"n": 0}

    def _make(role=ROLE_ADVISOR, username=None, status="Active", **fields):
        counter["n"] += 1
        username = username or f"{role.lower()}{counter['n']}"
        user = User(
            username=username,
            email=fields.pop("email", f"{username}@telecom.test"),
            password_hash=hash_password(TEST_PASSWORD),
            first_name=fields.pop("first_name", role),
            last_name=fields.pop("last_name", str(counter["n"])),
            role=role,
            status=status,
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def director(make_user):
    return make_user(ROLE_DIRECTOR, username="director")


@pytest.fixture(scope='function')
def controller(make_user):
    return make_user(ROLE_CONTROLLER, username="controller")


@pytest.fixture(scope='function')
def agent(make_user):
    return make_user(ROLE_AGENT, username="agent")


@pytest.fixture(scope='function')
def advisor(make_user):
    return make_user(ROLE_ADVISOR, username="advisor")


def actor_of(user):
    return Actor.for_user(user)


@pytest.fixture(scope='function')
def make_article(db_session):
    """Factory: committed Article. stock=None makes it untracked."""
    counter = {"n": 0}

    def _make(code=None, price_cents=100_000, stock=10, **fields):
        counter["n"] += 1
        article = Article(
            code=code or f"ART{counter['n']:03d}",
            name=fields.pop("name", f"Article {counter['n']}"),
            category=fields.pop("category", "Hardware"),
            service=fields.pop("service", "Internet"),
            client_type=fields.pop("client_type", "Residential"),
            price_cents=price_cents,
            currency="DA",
            stock_quantity=stock,
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db_session.add(article)
        db_session.commit()
        return article

    return _make


@pytest.fixture(scope='function')
def make_client(db_session):
    def _make(name="Amine Saidi", phone="0550123456", client_type="Residential", **fields):
        client = Client(name=name, phone=phone, client_type=client_type, **fields)
        db_session.add(client)
        db_session.commit()
        return client

    return _make


def get_auth_token(client, username, password=TEST_PASSWORD):
    """Helper to log in and get an auth token."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password,
    })
    assert response.status_code == 200, response.get_json()
    return response.get_json()['token']


def auth_headers(client, user):
    return {'Authorization': f'Bearer {get_auth_token(client, user.username)}'}
