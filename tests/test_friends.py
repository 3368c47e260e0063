"""Friends API, guest isolation and uploads"""

import io

from conftest import register


def test_guest_sees_demo_friends(client):
    friends = client.get('/api/friends').get_json()
    ids = {f['id'] for f in friends}
    assert {'demo-alex-johnson', 'demo-sarah-chen', 'demo-mike-torres'} <= ids


def test_demo_friends_are_read_only(client):
    response = client.put('/api/friends/demo-alex-johnson', json={'name': 'Changed'})
    assert response.status_code == 403
    assert client.delete('/api/friends/demo-alex-johnson').status_code == 403
    assert client.get('/api/friends/demo-alex-johnson').get_json()['name'] == 'Alex Johnson'


def test_signed_in_user_does_not_see_demo_friends(user_client):
    assert user_client.get('/api/friends').get_json() == []
    assert user_client.get('/api/friends/demo-alex-johnson').status_code == 404


def test_friend_crud(user_client, friend_payload):
    created = user_client.post('/api/friends', json=friend_payload)
    assert created.status_code == 201
    friend = created.get_json()
    assert friend['name'] == 'Jamie'
    assert friend['category'] == 'friend'
    assert friend['currency'] == 'USD'

    fetched = user_client.get(f"/api/friends/{friend['id']}")
    assert fetched.get_json()['interests'] == ['Art', 'Reading']

    updated = user_client.put(f"/api/friends/{friend['id']}", json={'category': 'family'})
    assert updated.status_code == 200
    assert updated.get_json()['category'] == 'family'
    assert updated.get_json()['name'] == 'Jamie'

    assert user_client.get('/api/friends/categories').get_json() == ['family']

    assert user_client.delete(f"/api/friends/{friend['id']}").status_code == 204
    assert user_client.get(f"/api/friends/{friend['id']}").status_code == 404
    assert user_client.delete(f"/api/friends/{friend['id']}").status_code == 404


def test_friend_validation(user_client):
    response = user_client.post('/api/friends', json={'name': '', 'personalityTraits': []})
    assert response.status_code == 400
    body = response.get_json()
    assert body['error'] == 'Invalid friend data'
    fields = {e['field'] for e in body['errors']}
    assert {'name', 'personalityTraits', 'interests'} <= fields


def test_friends_are_isolated_between_users(app, user_client, friend_payload):
    friend = user_client.post('/api/friends', json=friend_payload).get_json()

    other = app.test_client()
    register(other, 'mallory')
    assert other.get(f"/api/friends/{friend['id']}").status_code == 404
    assert other.put(f"/api/friends/{friend['id']}", json={'name': 'x'}).status_code == 404
    assert other.get('/api/friends').get_json() == []


def test_guests_are_isolated_from_each_other(app, friend_payload):
    first = app.test_client()
    second = app.test_client()
    friend = first.post('/api/friends', json=friend_payload).get_json()

    assert first.get(f"/api/friends/{friend['id']}").status_code == 200
    assert second.get(f"/api/friends/{friend['id']}").status_code == 404


def test_friend_reminders_require_login(client):
    assert client.get('/api/friends/demo-alex-johnson/reminders').status_code == 401


def test_profile_picture_upload(client):
    data = {'profilePicture': (io.BytesIO(b'\x89PNG\r\n\x1a\nfake'), 'me.png', 'image/png')}
    response = client.post('/api/upload/profile-picture', data=data, content_type='multipart/form-data')
    assert response.status_code == 200
    body = response.get_json()
    assert body['success'] is True
    assert body['originalName'] == 'me.png'
    assert body['imageUrl'] == f"/uploads/{body['filename']}"

    served = client.get(body['imageUrl'])
    assert served.status_code == 200
    assert served.data.startswith(b'\x89PNG')


def test_profile_picture_rejects_non_images(client):
    data = {'profilePicture': (io.BytesIO(b'hello'), 'notes.txt', 'text/plain')}
    response = client.post('/api/upload/profile-picture', data=data, content_type='multipart/form-data')
    assert response.status_code == 400


def test_profile_picture_size_limit(app, client):
    app.config['MAX_IMAGE_SIZE'] = 10
    data = {'profilePicture': (io.BytesIO(b'x' * 50), 'big.jpg', 'image/jpeg')}
    response = client.post('/api/upload/profile-picture', data=data, content_type='multipart/form-data')
    assert response.status_code == 400
    assert 'too large' in response.get_json()['error']
