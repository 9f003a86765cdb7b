from decimal import Decimal

import pytest

from app import create_app
from models import db


@pytest.fixture
def app():
    app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite://'})
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return app.extensions['finance_store']


@pytest.fixture
def user(store):
    return store.create_user({
        'username': 'max',
        'password': 'password123',
        'first_name': 'Max',
        'last_name': 'Mustermann',
        'email': 'max@example.com',
        'balance': Decimal('2500.00'),
        'schufa_score': 92,
    })


@pytest.fixture
def user_id(user):
    return user.id


@pytest.fixture
def balance_of(client):
    """Current balance of a user as reported by the API."""
    def read(user_id):
        response = client.get(f'/api/user/{user_id}')
        assert response.status_code == 200
        return Decimal(response.get_json()['balance'])
    return read
