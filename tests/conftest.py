"""Shared fixtures: an app per storage backend and authenticated clients"""

import pytest

from app import create_app
from core.database_models import db
from core.storage import create_storage


@pytest.fixture(params=['memory', 'database'])
def app(request, tmp_path):
    app = create_app('testing')
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    app.config['CLIENT_BUILD_DIR'] = str(tmp_path / 'client')

    if request.param == 'database':
        app.config['STORAGE_BACKEND'] = 'database'
        with app.app_context():
            db.create_all()
        create_storage(app)

    yield app

    if request.param == 'database':
        with app.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture
def memory_app(tmp_path):
    app = create_app('testing')
    app.config['UPLOAD_FOLDER'] = str(tmp_path / 'uploads')
    app.config['CLIENT_BUILD_DIR'] = str(tmp_path / 'client')
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def storage(app):
    return app.extensions['storage']


def register(client, username='alice', password='secret123'):
    response = client.post('/api/auth/register', json={'username': username, 'password': password})
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def make_admin(app, user_id):
    with app.app_context():
        app.extensions['storage'].update_user(user_id, {'isAdmin': True})


@pytest.fixture
def user_client(app):
    client = app.test_client()
    client.user = register(client, 'alice')
    return client


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    client.user = register(client, 'admin')
    make_admin(app, client.user['id'])
    return client


FRIEND = {
    'name': 'Jamie',
    'personalityTraits': ['Creative', 'Bookworm'],
    'interests': ['Art', 'Reading'],
    'notes': 'Loves rainy days',
}


@pytest.fixture
def friend_payload():
    return dict(FRIEND)
