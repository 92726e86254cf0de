import sys
import os
import pytest

# 1. Add the parent directory to Python's path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# 2. NOW import from app
from app import create_app
from extensions import db
from models import User, Ngo


@pytest.fixture
def app():
    """Create and configure a new app instance for each test."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret",
        "MAIL_SUPPRESS_SEND": True,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    """Factory: inserts a user straight into the DB (password is always 'password')."""
    def _create(email, role, name=None):
        user = User(name=name or email.split('@')[0].title(), email=email, role=role)
        user.set_password("password")
        db.session.add(user)
        db.session.commit()
        return user
    return _create


@pytest.fixture
def make_ngo(make_user):
    """Factory: NGO user plus its organization profile."""
    def _create(email, organization_name, verified=True):
        owner = make_user(email, 'ngo')
        ngo = Ngo(user_id=owner.id, organization_name=organization_name,
                  location='Mumbai, Maharashtra', verified=verified)
        db.session.add(ngo)
        db.session.commit()
        return ngo
    return _create


@pytest.fixture
def login(client):
    """Logs in through the API and returns ready-to-use headers."""
    def _login(email, password="password"):
        resp = client.post('/api/auth/login', json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return {'Authorization': f'Bearer {resp.get_json()["token"]}'}
    return _login
