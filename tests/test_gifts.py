"""Gift recommendation endpoint and saved gifts"""

import pytest

import api.gifts


GIFT = {
    'name': 'Professional Watercolor Paint Set',
    'description': 'A premium watercolor set',
    'price': '$36 - $54',
    'matchPercentage': 88,
    'matchingTraits': ['Creative'],
    'image': 'https://images.unsplash.com/photo-1513475382585-d06e58bcb0e0',
    'shops': [{'name': 'Amazon', 'price': '$45', 'inStock': True, 'url': 'https://amazon.com/s?k=watercolor'}],
}


def test_guest_recommendations_use_templates(app, client):
    response = client.post('/api/gift-recommendations', json={'friendId': 'demo-alex-johnson', 'budget': '$100'})
    assert response.status_code == 200
    recommendations = response.get_json()
    assert len(recommendations) >= 5
    for rec in recommendations:
        assert 60 <= rec['matchPercentage'] <= 95
        assert rec['price'].startswith('$')
        assert rec['shops']
        assert set(rec['matchingTraits']) <= {'Creative', 'Outdoorsy', 'Thoughtful'}

    with app.app_context():
        metrics = app.extensions['storage'].get_performance_metrics(operation='ai_recommendation')
    assert len(metrics) == 1
    assert metrics[0]['success'] is True
    assert metrics[0]['userId'] is None


@pytest.mark.parametrize('payload', [
    {'friendId': 'demo-alex-johnson'},
    {'budget': 50},
    {'friendId': 'demo-alex-johnson', 'budget': 0},
    {'friendId': 'demo-alex-johnson', 'budget': '-20'},
    {'friendId': 'demo-alex-johnson', 'budget': 'lots'},
])
def test_recommendation_request_validation(client, payload):
    assert client.post('/api/gift-recommendations', json=payload).status_code == 400


def test_recommendations_unknown_friend(client):
    response = client.post('/api/gift-recommendations', json={'friendId': 'missing', 'budget': 50})
    assert response.status_code == 404


def test_recommendation_failure_records_metric_for_users(app, user_client, friend_payload, monkeypatch):
    friend = user_client.post('/api/friends', json=friend_payload).get_json()

    def boom(*args, **kwargs):
        raise RuntimeError('provider down')

    monkeypatch.setattr(api.gifts, 'generate_gift_recommendations', boom)
    response = user_client.post('/api/gift-recommendations', json={'friendId': friend['id'], 'budget': 40})
    assert response.status_code == 500
    assert response.get_json() == {'error': 'Failed to generate gift recommendations'}

    with app.app_context():
        metrics = app.extensions['storage'].get_performance_metrics(operation='ai_recommendation')
    assert len(metrics) == 1
    assert metrics[0]['success'] is False
    assert metrics[0]['userId'] == user_client.user['id']


def test_recommendation_failure_skips_metric_for_guests(app, client, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError('provider down')

    monkeypatch.setattr(api.gifts, 'generate_gift_recommendations', boom)
    response = client.post('/api/gift-recommendations', json={'friendId': 'demo-alex-johnson', 'budget': 40})
    assert response.status_code == 500
    with app.app_context():
        assert app.extensions['storage'].get_performance_metrics(operation='ai_recommendation') == []


def test_recommendations_receive_friend_profile(user_client, friend_payload, monkeypatch):
    friend_payload.update({'country': 'United Kingdom', 'currency': 'gbp'})
    friend = user_client.post('/api/friends', json=friend_payload).get_json()
    captured = {}

    def fake(traits, interests, budget, name, currency, country, notes):
        captured.update(traits=traits, budget=budget, currency=currency, country=country, notes=notes)
        return [GIFT]

    monkeypatch.setattr(api.gifts, 'generate_gift_recommendations', fake)
    response = user_client.post('/api/gift-recommendations', json={'friendId': friend['id'], 'budget': '£75.50'})
    assert response.status_code == 200
    assert response.get_json() == [GIFT]
    assert captured == {
        'traits': ['Creative', 'Bookworm'],
        'budget': 75.5,
        'currency': 'GBP',
        'country': 'United Kingdom',
        'notes': 'Loves rainy days',
    }


def test_saved_gift_lifecycle(user_client, friend_payload):
    friend = user_client.post('/api/friends', json=friend_payload).get_json()

    created = user_client.post('/api/saved-gifts', json={'friendId': friend['id'], 'giftData': GIFT})
    assert created.status_code == 201
    gift = created.get_json()
    assert gift['giftData']['name'] == GIFT['name']
    assert gift['friendId'] == friend['id']

    assert [g['id'] for g in user_client.get('/api/saved-gifts').get_json()] == [gift['id']]
    by_friend = user_client.get(f"/api/saved-gifts/friend/{friend['id']}").get_json()
    assert [g['id'] for g in by_friend] == [gift['id']]

    assert user_client.delete(f"/api/saved-gifts/{gift['id']}").status_code == 204
    assert user_client.delete(f"/api/saved-gifts/{gift['id']}").status_code == 404
    assert user_client.get('/api/saved-gifts').get_json() == []


def test_saved_gift_requires_accessible_friend(user_client):
    response = user_client.post('/api/saved-gifts', json={'friendId': 'demo-alex-johnson', 'giftData': GIFT})
    assert response.status_code == 404


def test_saved_gift_validation(user_client):
    response = user_client.post('/api/saved-gifts', json={'friendId': 'x'})
    assert response.status_code == 400
    assert response.get_json()['errors'][0]['field'] == 'giftData'


def test_deleting_friend_removes_saved_gifts(user_client, friend_payload):
    friend = user_client.post('/api/friends', json=friend_payload).get_json()
    user_client.post('/api/saved-gifts', json={'friendId': friend['id'], 'giftData': GIFT})
    user_client.delete(f"/api/friends/{friend['id']}")
    assert user_client.get('/api/saved-gifts').get_json() == []
