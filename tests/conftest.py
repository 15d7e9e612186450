import pytest
from trio_tracker.app import create_app, db, socketio
from trio_tracker.routes.presence import reset_presence


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    reset_presence()


@pytest.fixture
def anon_client(app):
    """A client that has not entered the site PIN."""
    return app.test_client()


@pytest.fixture
def client(app):
    client = app.test_client()
    res = client.post('/api/auth/verify-pin', json={'pin': app.config['SITE_ACCESS_PIN']})
    assert res.status_code == 200
    return client


@pytest.fixture
def auth_headers(client):
    """Register a user and return auth headers."""
    res = client.post('/api/auth/register', json={
        'username': 'testuser', 'password': 'password123', 'display_name': 'Test User',
    })
    token = res.get_json()['token']
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}


@pytest.fixture
def socket_client(app, client):
    sio = socketio.test_client(app, flask_test_client=client)
    yield sio
    if sio.is_connected():
        sio.disconnect()


class FakeResponse:
    def __init__(self, status_code=204, text=''):
        self.status_code = status_code
        self.text = text


class DiscordRecorder:
    """Stands in for requests.post; `status` and `text` control the webhook's reply."""

    def __init__(self):
        self.calls = []
        self.status = 204
        self.text = ''

    def post(self, url, json=None, timeout=None):
        self.calls.append({'url': url, 'json': json, 'timeout': timeout})
        return FakeResponse(status_code=self.status, text=self.text)


@pytest.fixture
def discord(monkeypatch):
    recorder = DiscordRecorder()
    monkeypatch.setattr('trio_tracker.services.discord.requests.post', recorder.post)
    return recorder
