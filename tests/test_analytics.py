"""Analytics collection endpoints and the dashboard summary"""

import json

from services.analytics import CACHE_KEY, AnalyticsService, is_negative, is_positive


class StubStorage:
    def __init__(self, events=(), feedback=(), performance=()):
        self.events = list(events)
        self.feedback = list(feedback)
        self.performance = list(performance)
        self.calls = 0

    def get_analytics_events(self, limit=100, user_id=None):
        self.calls += 1
        return self.events[:limit]

    def get_feedback(self, limit=100, user_id=None):
        return self.feedback[:limit]

    def get_performance_metrics(self, limit=100, operation=None, user_id=None):
        return self.performance[:limit]


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.ttl = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttl[key] = ttl

    def delete(self, key):
        self.store.pop(key, None)


def metric(ts, response_time, success=True, operation='ai_recommendation'):
    return {'operation': operation, 'responseTime': response_time, 'success': success, 'timestamp': ts}


def rating(ts, value):
    return {'giftName': 'Watercolor Set', 'rating': value, 'createdAt': ts}


def test_rating_polarity():
    assert [r for r in (-1, 1, 2, 3, 4, 5) if is_positive(r)] == [1, 4, 5]
    assert [r for r in (-1, 1, 2, 3, 4, 5) if is_negative(r)] == [-1, 2]


def test_guest_can_record_event(client):
    response = client.post('/api/analytics/events', json={'eventType': 'page_view', 'eventData': {'page': '/'}},
                           headers={'User-Agent': 'pytest-agent'})
    assert response.status_code == 201
    event = response.get_json()
    assert event['eventType'] == 'page_view'
    assert event['userId'] is None
    assert event['userAgent'] == 'pytest-agent'
    assert event['ipAddress']


def test_event_validation(client):
    response = client.post('/api/analytics/events', json={'eventData': 'nope'})
    assert response.status_code == 400
    fields = {e['field'] for e in response.get_json()['errors']}
    assert fields == {'eventType', 'eventData'}


def test_feedback_records_user(user_client):
    response = user_client.post('/api/analytics/feedback', json={
        'recommendationData': {'giftName': 'Hiking Boots'}, 'rating': 5, 'helpful': True,
    })
    assert response.status_code == 201
    feedback = response.get_json()
    assert feedback['giftName'] == 'Hiking Boots'
    assert feedback['userId'] == user_client.user['id']
    assert feedback['purchased'] is False


def test_feedback_rating_validation(client):
    for bad in ({'giftName': 'x'}, {'giftName': 'x', 'rating': 0}, {'giftName': 'x', 'rating': 9}):
        assert client.post('/api/analytics/feedback', json=bad).status_code == 400


def test_performance_metric_validation(client):
    assert client.post('/api/analytics/performance', json={'operation': 'x'}).status_code == 400
    assert client.post('/api/analytics/performance',
                       json={'operation': 'x', 'responseTime': -5}).status_code == 400
    response = client.post('/api/analytics/performance', json={'operation': 'page_load', 'responseTime': 120})
    assert response.status_code == 201
    assert response.get_json()['success'] is True


def test_admin_listing(client, user_client, admin_client):
    for page in ('home', 'friends', 'gifts'):
        client.post('/api/analytics/events', json={'eventType': 'page_view', 'eventData': {'page': page}})
    client.post('/api/analytics/performance', json={'operation': 'page_load', 'responseTime': 80})
    client.post('/api/analytics/performance', json={'operation': 'ai_recommendation', 'responseTime': 2500})

    assert client.get('/api/analytics/events').status_code == 401
    assert user_client.get('/api/analytics/events').status_code == 403

    events = admin_client.get('/api/analytics/events?limit=2').get_json()
    assert len(events) == 2

    filtered = admin_client.get('/api/analytics/performance?operation=page_load').get_json()
    assert [m['operation'] for m in filtered] == ['page_load']

    assert admin_client.get('/api/analytics/feedback').get_json() == []


def test_admin_summary_endpoint(client, admin_client):
    client.post('/api/analytics/events', json={'eventType': 'page_view'})
    client.post('/api/analytics/events', json={'eventType': 'gift_saved'})
    client.post('/api/analytics/events', json={'eventType': 'page_view'})
    client.post('/api/analytics/feedback', json={'giftName': 'Book', 'rating': 1})

    response = admin_client.get('/api/analytics/summary?refresh=true')
    assert response.status_code == 200
    summary = response.get_json()
    assert summary['eventCounts'] == {'page_view': 2, 'gift_saved': 1}
    assert summary['metrics']['total_events']['value'] == 3
    assert summary['metrics']['total_feedback']['value'] == 1


def test_summary_metrics_and_operations():
    storage = StubStorage(
        events=[{'eventType': 'page_view', 'timestamp': '2026-01-01T10:00:00'}],
        feedback=[rating('2026-01-01T10:00:30', 5), rating('2026-01-01T11:00:30', -1),
                  rating('2026-01-01T12:00:30', 3), rating('2026-01-01T13:00:30', 4)],
        performance=[
            metric('2026-01-01T10:00:00', 2000),
            metric('2026-01-01T11:00:00', 4000),
            metric('2026-01-01T12:00:00', 9000, success=False),
            metric('2026-01-01T13:00:00', 9000),
            metric('2026-01-01T14:00:00', 100, operation='page_load'),
        ],
    )
    summary = AnalyticsService(storage).get_summary()
    metrics = summary['metrics']

    assert metrics['positive_ratings']['value'] == 2
    assert metrics['negative_ratings']['value'] == 1
    assert metrics['positive_rate']['value'] == 66.67
    assert metrics['success_rate']['value'] == 80.0
    assert metrics['success_rate']['status'] == 'critical'
    assert metrics['average_response_time']['value'] == 4820.0
    assert metrics['average_response_time']['status'] == 'warning'

    operations = {op['operation']: op for op in summary['operations']}
    assert operations['ai_recommendation']['count'] == 4
    assert operations['ai_recommendation']['successRate'] == 75.0
    assert operations['page_load']['averageResponseTime'] == 100.0

    titles = [r['title'] for r in summary['recommendations']]
    assert titles[0] == 'Recommendation Failures Detected'


def test_satisfaction_by_response_time():
    storage = StubStorage(
        feedback=[rating('2026-01-01T10:01:00', 5),
                  rating('2026-01-01T11:02:00', 2),
                  rating('2026-01-01T12:01:00', 1),
                  rating('2026-01-01T15:30:00', 5)],
        performance=[
            metric('2026-01-01T10:00:00', 1500),
            metric('2026-01-01T11:00:00', 9500),
            metric('2026-01-01T12:00:00', 10000),
            # no feedback within five minutes
            metric('2026-01-01T14:00:00', 4000),
        ],
    )
    satisfaction = AnalyticsService(storage).get_summary()['satisfactionByResponseTime']

    assert satisfaction['fast'] == {'samples': 1, 'satisfactionRate': 100.0}
    assert satisfaction['medium'] == {'samples': 0, 'satisfactionRate': None}
    assert satisfaction['slow'] == {'samples': 2, 'satisfactionRate': 50.0}


def test_empty_summary():
    summary = AnalyticsService(StubStorage()).get_summary()
    assert summary['eventCounts'] == {}
    assert summary['operations'] == []
    assert summary['recommendations'] == []
    assert set(summary['metrics']) == {'total_events', 'total_feedback'}


def test_summary_is_cached_in_redis():
    storage = StubStorage(events=[{'eventType': 'page_view', 'timestamp': '2026-01-01T10:00:00'}])
    cache = FakeRedis()
    service = AnalyticsService(storage, redis_client=cache, cache_ttl=60)

    first = service.get_summary()
    assert cache.ttl[CACHE_KEY] == 60
    assert json.loads(cache.store[CACHE_KEY])['eventCounts'] == {'page_view': 1}

    storage.events.append({'eventType': 'signup', 'timestamp': '2026-01-01T11:00:00'})
    assert service.get_summary() == first
    assert storage.calls == 1

    refreshed = service.get_summary(force_refresh=True)
    assert refreshed['eventCounts'] == {'page_view': 1, 'signup': 1}

    service.invalidate()
    assert CACHE_KEY not in cache.store
