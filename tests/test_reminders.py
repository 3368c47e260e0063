"""Reminder endpoints, due-reminder sweeps and the Celery tasks"""

from datetime import date, datetime, time, timedelta

import pytest

from conftest import register
from core.storage import MemStorage
from services.email import EmailConnectionError, EmailService
from services.reminders import add_one_year
from tasks import reminder_tasks


@pytest.fixture
def friend(user_client, friend_payload):
    return user_client.post('/api/friends', json=friend_payload).get_json()


@pytest.fixture
def email_prefs(user_client):
    user_client.put('/api/user/notification-preferences', json={
        'email': {'enabled': True, 'address': 'alice@giftgenie.app'},
        'defaultAdvanceDays': 3,
    })


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    def fake_send(self, to, friend_name, occasion_type, occasion_date, custom_message=None,
                  title=None, raise_on_connection_error=False):
        sent.append({'to': to, 'friend': friend_name, 'occasion': occasion_type})
        return True

    monkeypatch.setattr(EmailService, 'send_gift_reminder', fake_send)
    return sent


def due_reminder(client, friend, **extra):
    """Create a reminder whose reminder date was yesterday"""
    occasion = date.today() + timedelta(days=2)
    payload = {'friendId': friend['id'], 'title': "Jamie's birthday",
               'occasionDate': occasion.isoformat(), 'advanceDays': 3}
    payload.update(extra)
    response = client.post('/api/reminders', json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def test_reminders_require_login(client):
    assert client.get('/api/reminders').status_code == 401
    assert client.post('/api/reminders', json={}).status_code == 401


def test_create_reminder_uses_preferences(user_client, friend, email_prefs):
    response = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Birthday', 'occasionDate': '2030-06-10',
    })
    assert response.status_code == 201
    reminder = response.get_json()
    assert reminder['advanceDays'] == 3
    assert reminder['reminderDate'] == '2030-06-07'
    assert reminder['notificationMethods']['email'] == {'enabled': True, 'address': 'alice@giftgenie.app'}
    assert reminder['status'] == 'active'
    assert reminder['friendName'] == 'Jamie'


def test_create_reminder_with_explicit_advance(user_client, friend):
    reminder = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Anniversary', 'occasionDate': '2030-06-10',
        'occasionType': 'anniversary', 'advanceDays': 10,
    }).get_json()
    assert reminder['reminderDate'] == '2030-05-31'
    assert reminder['occasionType'] == 'anniversary'
    assert reminder['notificationMethods']['email']['enabled'] is False


def test_create_reminder_validation(user_client, friend):
    response = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': '', 'occasionDate': 'soon', 'occasionType': 'party',
    })
    assert response.status_code == 400
    fields = {e['field'] for e in response.get_json()['errors']}
    assert {'title', 'occasionDate', 'occasionType'} <= fields


def test_create_reminder_for_unknown_friend(user_client):
    response = user_client.post('/api/reminders', json={
        'friendId': 'nobody', 'title': 'Birthday', 'occasionDate': '2030-06-10',
    })
    assert response.status_code == 404


def test_reminder_update_and_lifecycle(user_client, friend):
    reminder = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Birthday', 'occasionDate': '2030-06-10', 'advanceDays': 7,
    }).get_json()
    url = f"/api/reminders/{reminder['id']}"

    moved = user_client.put(url, json={'occasionDate': '2030-07-01'}).get_json()
    assert moved['occasionDate'] == '2030-07-01'
    assert moved['reminderDate'] == '2030-06-24'

    snoozed = user_client.post(f"{url}/snooze", json={'until': '2030-06-30'}).get_json()
    assert snoozed['status'] == 'snoozed'
    assert snoozed['snoozeUntil'] == '2030-06-30'

    assert user_client.post(f"{url}/snooze", json={'until': 'never'}).status_code == 400
    assert user_client.post(f"{url}/snooze", json={}).status_code == 400

    cancelled = user_client.post(f"{url}/cancel").get_json()
    assert cancelled['status'] == 'cancelled'

    listed = user_client.get(f"/api/friends/{friend['id']}/reminders").get_json()
    assert [r['id'] for r in listed] == [reminder['id']]

    assert user_client.delete(url).status_code == 204
    assert user_client.get(url).status_code == 404
    assert user_client.get('/api/reminders').get_json() == []


def test_null_reminder_date_is_recomputed(user_client, admin_client, friend, email_prefs, sent_emails):
    reminder = due_reminder(user_client, friend)
    url = f"/api/reminders/{reminder['id']}"

    response = user_client.put(url, json={'reminderDate': None})
    assert response.status_code == 200
    occasion = date.fromisoformat(reminder['occasionDate'])
    assert response.get_json()['reminderDate'] == (occasion - timedelta(days=3)).isoformat()

    summary = admin_client.post('/api/reminders/check-due')
    assert summary.status_code == 200
    assert summary.get_json() == {'checked': 1, 'sent': 1, 'skipped': 0, 'failed': 0}


def test_snoozed_status_needs_a_date(user_client, friend):
    reminder = due_reminder(user_client, friend)
    url = f"/api/reminders/{reminder['id']}"

    response = user_client.put(url, json={'status': 'snoozed'})
    assert response.status_code == 400
    assert response.get_json()['errors'][0]['field'] == 'snoozeUntil'

    user_client.post(f"{url}/snooze", json={'until': '2030-06-30'})
    assert user_client.put(url, json={'snoozeUntil': None}).status_code == 400

    created = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Birthday', 'occasionDate': '2030-06-10', 'status': 'snoozed',
    })
    assert created.status_code == 400


def test_memory_sweep_ignores_undated_reminders():
    storage = MemStorage()
    today = date.today()
    undated = storage.create_reminder({'friendId': 'f1', 'title': 'Broken', 'reminderDate': None,
                                       'occasionDate': today}, 'u1')
    due = storage.create_reminder({'friendId': 'f1', 'title': 'Due', 'reminderDate': today,
                                   'occasionDate': today + timedelta(days=7)}, 'u1')
    storage.create_reminder({'friendId': 'f1', 'title': 'Snoozed', 'reminderDate': None,
                             'occasionDate': today, 'status': 'snoozed',
                             'snoozeUntil': today - timedelta(days=1)}, 'u1')

    titles = [r['title'] for r in storage.get_due_reminders(today)]
    assert sorted(titles) == ['Due', 'Snoozed']
    assert undated['id'] not in [r['id'] for r in storage.get_due_reminders(today)]
    assert due['id'] in [r['id'] for r in storage.get_due_reminders(today)]


def test_reminder_saved_gift_must_match_friend(app, user_client, friend, friend_payload):
    other_friend = user_client.post('/api/friends', json=dict(friend_payload, name='Robin')).get_json()
    gift = user_client.post('/api/saved-gifts', json={
        'friendId': friend['id'], 'giftData': {'name': 'Sketchbook', 'price': '$20'},
    }).get_json()
    base = {'title': 'Birthday', 'occasionDate': '2030-06-10'}

    mismatched = user_client.post('/api/reminders', json=dict(base, friendId=other_friend['id'],
                                                              savedGiftId=gift['id']))
    assert mismatched.status_code == 404
    unknown = user_client.post('/api/reminders', json=dict(base, friendId=friend['id'], savedGiftId='nope'))
    assert unknown.status_code == 404

    linked = user_client.post('/api/reminders', json=dict(base, friendId=friend['id'], savedGiftId=gift['id']))
    assert linked.status_code == 201
    assert linked.get_json()['savedGiftId'] == gift['id']

    url = f"/api/reminders/{linked.get_json()['id']}"
    assert user_client.put(url, json={'friendId': other_friend['id']}).status_code == 200
    assert user_client.put(url, json={'savedGiftId': gift['id']}).status_code == 404

    mallory = app.test_client()
    register(mallory, 'mallory')
    mallory_friend = mallory.post('/api/friends', json=friend_payload).get_json()
    stolen = mallory.post('/api/reminders', json=dict(base, friendId=mallory_friend['id'], savedGiftId=gift['id']))
    assert stolen.status_code == 404


def test_reminders_are_private(app, user_client, friend):
    reminder = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Birthday', 'occasionDate': '2030-06-10',
    }).get_json()

    other = app.test_client()
    register(other, 'mallory')
    assert other.get(f"/api/reminders/{reminder['id']}").status_code == 404
    assert other.post(f"/api/reminders/{reminder['id']}/cancel").status_code == 404
    assert other.delete(f"/api/reminders/{reminder['id']}").status_code == 404


def test_check_due_sends_and_marks_sent(user_client, admin_client, friend, email_prefs, sent_emails):
    reminder = due_reminder(user_client, friend)
    # Not yet due
    user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Later', 'occasionDate': '2030-06-10',
    })

    response = admin_client.post('/api/reminders/check-due')
    assert response.status_code == 200
    assert response.get_json() == {'checked': 1, 'sent': 1, 'skipped': 0, 'failed': 0}
    assert sent_emails == [{'to': 'alice@giftgenie.app', 'friend': 'Jamie', 'occasion': 'birthday'}]

    updated = user_client.get(f"/api/reminders/{reminder['id']}").get_json()
    assert updated['status'] == 'sent'
    assert updated['lastSentAt']


def test_recurring_reminder_rolls_forward(user_client, admin_client, friend, email_prefs, sent_emails):
    reminder = due_reminder(user_client, friend, isRecurring=True)
    occasion = date.fromisoformat(reminder['occasionDate'])

    admin_client.post('/api/reminders/check-due')

    updated = user_client.get(f"/api/reminders/{reminder['id']}").get_json()
    assert updated['status'] == 'active'
    next_occasion = date.fromisoformat(updated['occasionDate'])
    assert next_occasion.year == occasion.year + 1
    assert updated['reminderDate'] == (next_occasion - timedelta(days=3)).isoformat()


def test_add_one_year_handles_leap_day():
    assert add_one_year(date(2024, 2, 29)) == date(2025, 2, 28)
    assert add_one_year(date(2025, 6, 5)) == date(2026, 6, 5)


def test_recurring_leap_day_reminder_rolls_to_feb_28(user_client, admin_client, friend, email_prefs,
                                                      sent_emails):
    reminder = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Leap birthday', 'occasionDate': '2024-02-29',
        'advanceDays': 3, 'isRecurring': True,
    }).get_json()
    assert reminder['reminderDate'] == '2024-02-26'

    admin_client.post('/api/reminders/check-due')

    updated = user_client.get(f"/api/reminders/{reminder['id']}").get_json()
    assert updated['occasionDate'] == '2025-02-28'
    assert updated['reminderDate'] == '2025-02-25'
    assert updated['status'] == 'active'


def test_check_due_skips_reminder_already_sent_today(app, user_client, admin_client, friend, email_prefs,
                                                      sent_emails):
    reminder = due_reminder(user_client, friend)
    with app.app_context():
        app.extensions['storage'].update_reminder(
            reminder['id'], {'lastSentAt': datetime.combine(date.today(), time(9, 0))})

    summary = admin_client.post('/api/reminders/check-due').get_json()
    assert summary == {'checked': 1, 'sent': 0, 'skipped': 1, 'failed': 0}
    assert sent_emails == []
    assert user_client.get(f"/api/reminders/{reminder['id']}").get_json()['status'] == 'active'


def test_check_due_skips_reminders_without_email(user_client, admin_client, friend, sent_emails):
    due_reminder(user_client, friend)
    summary = admin_client.post('/api/reminders/check-due').get_json()
    assert summary == {'checked': 1, 'sent': 0, 'skipped': 1, 'failed': 0}
    assert sent_emails == []


def test_check_due_counts_failed_delivery(user_client, admin_client, friend, email_prefs, monkeypatch):
    monkeypatch.setattr(EmailService, 'send_gift_reminder', lambda self, *args, **kwargs: False)
    reminder = due_reminder(user_client, friend)

    summary = admin_client.post('/api/reminders/check-due').get_json()
    assert summary['failed'] == 1
    assert user_client.get(f"/api/reminders/{reminder['id']}").get_json()['status'] == 'active'


def test_unconfigured_email_fails_delivery(user_client, admin_client, friend, email_prefs):
    due_reminder(user_client, friend)
    summary = admin_client.post('/api/reminders/check-due').get_json()
    assert summary == {'checked': 1, 'sent': 0, 'skipped': 0, 'failed': 1}


def test_snoozed_reminder_becomes_due(user_client, admin_client, friend, email_prefs, sent_emails):
    reminder = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Birthday', 'occasionDate': '2030-06-10',
    }).get_json()
    yesterday = (date.today() - timedelta(days=1)).isoformat()
    user_client.post(f"/api/reminders/{reminder['id']}/snooze", json={'until': yesterday})

    summary = admin_client.post('/api/reminders/check-due').get_json()
    assert summary['sent'] == 1


def test_admin_test_send(user_client, admin_client, friend, email_prefs, sent_emails):
    reminder = user_client.post('/api/reminders', json={
        'friendId': friend['id'], 'title': 'Birthday', 'occasionDate': '2030-06-10',
    }).get_json()

    assert user_client.post(f"/api/reminders/{reminder['id']}/test").status_code == 403

    response = admin_client.post(f"/api/reminders/{reminder['id']}/test")
    assert response.status_code == 200
    body = response.get_json()
    assert body['result'] == 'sent'
    assert body['reminder']['status'] == 'sent'
    assert len(sent_emails) == 1

    assert admin_client.post('/api/reminders/missing/test').status_code == 404


def test_check_due_task(app, user_client, friend, email_prefs, sent_emails):
    due_reminder(user_client, friend)
    summary = reminder_tasks.check_due_reminders()
    assert summary == {'checked': 1, 'sent': 1, 'skipped': 0, 'failed': 0}


def test_send_reminder_task(app, user_client, friend, email_prefs, sent_emails):
    reminder = due_reminder(user_client, friend)
    assert reminder_tasks.send_reminder(reminder['id']) == {'reminder_id': reminder['id'], 'result': 'sent'}
    assert reminder_tasks.send_reminder('missing') == {'reminder_id': 'missing', 'result': 'missing'}


def test_send_reminder_task_retries_on_connection_error(app, user_client, friend, email_prefs, monkeypatch):
    def unreachable(self, *args, raise_on_connection_error=False, **kwargs):
        if raise_on_connection_error:
            raise EmailConnectionError('connection refused')
        return False

    monkeypatch.setattr(EmailService, 'send_gift_reminder', unreachable)
    reminder = due_reminder(user_client, friend)

    with pytest.raises(EmailConnectionError):
        reminder_tasks.send_reminder(reminder['id'])


def test_celery_configuration(app):
    celery = app.extensions['celery']
    assert celery.conf.task_always_eager is True
    schedule = celery.conf.beat_schedule['check-due-reminders']
    assert schedule['task'] == 'tasks.reminder_tasks.check_due_reminders'
