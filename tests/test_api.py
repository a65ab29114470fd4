from datetime import timedelta

import pytest
from django.utils import timezone

from eventreg.models import Event, Registration, RegistrationStatus as S

pytestmark = pytest.mark.django_db


def assert_error(response, status_code, code):
    assert response.status_code == status_code, response.content
    body = response.json()
    assert body['success'] is False
    assert body['error']['code'] == code
    assert 'timestamp' in body['error']
    return body['error']


class TestHealthAndAuth:
    def test_health_check_is_public(self, api_client):
        response = api_client.get('/api/health/')
        assert response.status_code == 200
        assert response.json()['status'] == 'OK'

    def test_events_require_authentication(self, api_client):
        assert_error(api_client.get('/api/events/'), 401, 'UNAUTHORIZED')

    def test_signup_then_login_with_email(self, api_client, branch):
        response = api_client.post('/api/users/register/', {
            'student_id': 'ece2025017',
            'full_name': 'Ravi Kumar',
            'username': 'ravi.k',
            'email': 'ravi@example.com',
            'password': 'Strong@Pass1',
            'phone': '+919812345678',
            'graduation_year': 2028,
            'branch_id': branch.pk,
        }, format='json')
        assert response.status_code == 201, response.content
        user = response.json()['user']
        assert user['profile']['student_id'] == 'ECE2025017'
        assert user['is_admin'] is False

        login = api_client.post('/api/users/login/', {
            'username': 'RAVI@example.com',
            'password': 'Strong@Pass1',
        }, format='json')
        assert login.status_code == 200, login.content
        tokens = login.json()
        assert tokens['token_type'] == 'Bearer'
        assert tokens['user']['username'] == 'ravi.k'

        api_client.credentials(HTTP_AUTHORIZATION=f"Bearer {tokens['access']}")
        assert api_client.get('/api/events/').status_code == 200

    def test_signup_validation_error_envelope(self, api_client, branch):
        response = api_client.post('/api/users/register/', {
            'student_id': 'ece2025017',
            'full_name': 'Ravi Kumar',
            'username': 'ravi.k',
            'email': 'ravi@example.com',
            'password': 'weak',
            'phone': '+919812345678',
            'graduation_year': 2028,
            'branch_id': branch.pk,
        }, format='json')
        error = assert_error(response, 400, 'INVALID_PASSWORD')
        assert error['details']['requirements']

    def test_login_with_wrong_password(self, api_client, student):
        response = api_client.post('/api/token/', {'username': student.username, 'password': 'nope'}, format='json')
        assert_error(response, 401, 'UNAUTHORIZED')

    def test_user_detail_is_private(self, client_for, student, other_student):
        assert client_for(student).get(f'/api/users/{student.pk}/').status_code == 200
        assert_error(client_for(other_student).get(f'/api/users/{student.pk}/'), 403, 'FORBIDDEN')

    def test_user_profile_update(self, client_for, student):
        response = client_for(student).put(
            f'/api/users/{student.pk}/', {'full_name': 'Alice Sharma'}, format='json'
        )
        assert response.status_code == 200
        assert response.json()['profile']['full_name'] == 'Alice Sharma'


class TestEventEndpoints:
    def event_payload(self, venue, **overrides):
        start = timezone.now() + timedelta(days=3)
        payload = {
            'name': 'Quiz Night',
            'start_time': start.isoformat(),
            'end_time': (start + timedelta(hours=2)).isoformat(),
            'max_slots': 10,
            'venue_id': venue.pk,
        }
        payload.update(overrides)
        return payload

    def test_students_cannot_create_events(self, client_for, student, venue):
        response = client_for(student).post('/api/events/', self.event_payload(venue), format='json')
        assert_error(response, 403, 'FORBIDDEN')

    def test_admin_event_lifecycle(self, client_for, admin_user, venue):
        client = client_for(admin_user)
        created = client.post('/api/events/', self.event_payload(venue), format='json')
        assert created.status_code == 201, created.content
        event_id = created.json()['id']
        assert created.json()['is_published'] is False

        published = client.post(f'/api/events/{event_id}/publish/')
        assert published.status_code == 200
        assert published.json()['is_open_for_registration'] is True

        locked = client.put(f'/api/events/{event_id}/', {'max_slots': 5}, format='json')
        assert_error(locked, 409, 'EVENT_LOCKED')

        assert client.post(f'/api/events/{event_id}/unpublish/').status_code == 200
        assert client.delete(f'/api/events/{event_id}/').status_code == 204

    def test_create_event_over_venue_capacity(self, client_for, admin_user, venue):
        response = client_for(admin_user).post(
            '/api/events/', self.event_payload(venue, max_slots=500), format='json'
        )
        assert_error(response, 400, 'INVALID_MAX_SLOTS')

    def test_create_event_serializer_errors(self, client_for, admin_user, venue):
        response = client_for(admin_user).post(
            '/api/events/', self.event_payload(venue, max_slots=0), format='json'
        )
        error = assert_error(response, 400, 'INVALID_INPUT')
        assert 'max_slots' in error['details']

    def test_students_only_see_published_events(self, client_for, student, make_event):
        hidden = make_event(name='Hidden', is_published=False)
        visible = make_event(name='Visible')
        client = client_for(student)

        names = [e['name'] for e in client.get('/api/events/').json()]
        assert names == ['Visible']
        assert client.get(f'/api/events/{visible.pk}/').status_code == 200
        assert_error(client.get(f'/api/events/{hidden.pk}/'), 404, 'EVENT_NOT_FOUND')


class TestRegistrationEndpoints:
    def test_register_and_waitlist(self, client_for, make_user, event):
        responses = [
            client_for(make_user(f'user{i}')).post(f'/api/events/{event.pk}/registrations/')
            for i in range(3)
        ]
        assert [r.status_code for r in responses] == [201, 201, 201]
        assert [r.json()['status'] for r in responses] == ['CONFIRMED', 'CONFIRMED', 'WAITLISTED']
        body = responses[0].json()
        assert set(body) == {'id', 'user_id', 'event_id', 'event_name', 'registered_at', 'status'}
        assert body['event_id'] == event.pk

    def test_duplicate_registration(self, client_for, student, event):
        client = client_for(student)
        client.post(f'/api/events/{event.pk}/registrations/')
        assert_error(client.post(f'/api/events/{event.pk}/registrations/'), 409, 'ALREADY_REGISTERED')

    def test_register_for_closed_event(self, client_for, student, make_event):
        event = make_event(status=Event.STATUS_CANCELLED)
        response = client_for(student).post(f'/api/events/{event.pk}/registrations/')
        assert_error(response, 409, 'EVENT_NOT_OPEN')

    def test_register_for_missing_event(self, client_for, student):
        assert_error(client_for(student).post('/api/events/4040/registrations/'), 404, 'EVENT_NOT_FOUND')

    def test_cancel_promotes_waitlisted(self, client_for, make_user, event):
        users = [make_user(f'user{i}') for i in range(3)]
        ids = [
            client_for(user).post(f'/api/events/{event.pk}/registrations/').json()['id']
            for user in users
        ]
        response = client_for(users[0]).delete(f'/api/events/{event.pk}/registrations/{ids[0]}/')
        assert response.status_code == 200
        assert response.json()['status'] == 'CANCELLED'
        assert Registration.objects.get(pk=ids[2]).status == S.CONFIRMED

    def test_cannot_cancel_someone_elses_registration(self, client_for, student, other_student, event):
        registration_id = client_for(student).post(f'/api/events/{event.pk}/registrations/').json()['id']
        response = client_for(other_student).delete(f'/api/events/{event.pk}/registrations/{registration_id}/')
        assert_error(response, 403, 'FORBIDDEN')

    def test_event_registrations_and_stats_are_admin_only(self, client_for, student, admin_user, event):
        client_for(student).post(f'/api/events/{event.pk}/registrations/')

        assert_error(client_for(student).get(f'/api/events/{event.pk}/registrations/'), 403, 'FORBIDDEN')
        assert_error(client_for(student).get(f'/api/events/{event.pk}/registrations/stats/'), 403, 'FORBIDDEN')

        admin = client_for(admin_user)
        listing = admin.get(f'/api/events/{event.pk}/registrations/').json()
        assert [row['username'] for row in listing] == ['alice']
        stats = admin.get(f'/api/events/{event.pk}/registrations/stats/').json()
        assert stats['counts']['CONFIRMED'] == 1
        assert stats['total'] == 1

    def test_my_registrations(self, client_for, student, other_student, event):
        client_for(student).post(f'/api/events/{event.pk}/registrations/')
        client_for(other_student).post(f'/api/events/{event.pk}/registrations/')

        mine = client_for(student).get('/api/registrations/').json()
        assert len(mine) == 1
        assert mine[0]['user_id'] == student.pk

    def test_admin_status_update_and_history(self, client_for, student, admin_user, event):
        registration_id = client_for(student).post(f'/api/events/{event.pk}/registrations/').json()['id']
        admin = client_for(admin_user)

        response = admin.put(
            f'/api/registrations/{registration_id}/',
            {'status': 'ATTENDED', 'reason': 'Scanned at entry'},
            format='json',
        )
        assert response.status_code == 200
        assert response.json()['status'] == 'ATTENDED'

        invalid = admin.put(f'/api/registrations/{registration_id}/', {'status': 'CONFIRMED'}, format='json')
        error = assert_error(invalid, 409, 'INVALID_STATUS_TRANSITION')
        assert error['details'] == {'from': 'ATTENDED', 'to': 'CONFIRMED'}

        history = client_for(student).get(f'/api/registrations/{registration_id}/history/').json()
        assert [entry['action'] for entry in history] == ['status_changed', 'registered']
        assert history[0]['reason'] == 'Scanned at entry'

    def test_status_update_is_admin_only(self, client_for, student, event):
        registration_id = client_for(student).post(f'/api/events/{event.pk}/registrations/').json()['id']
        response = client_for(student).put(
            f'/api/registrations/{registration_id}/', {'status': 'ATTENDED'}, format='json'
        )
        assert_error(response, 403, 'FORBIDDEN')

    def test_status_update_requires_status(self, client_for, admin_user, student, event):
        registration_id = client_for(student).post(f'/api/events/{event.pk}/registrations/').json()['id']
        response = client_for(admin_user).put(f'/api/registrations/{registration_id}/', {}, format='json')
        assert_error(response, 400, 'INVALID_STATUS')


class TestVenueEndpoints:
    def test_students_can_read_but_not_write(self, client_for, student, venue):
        client = client_for(student)
        assert client.get('/api/venues/').status_code == 200
        response = client.post('/api/venues/', {'name': 'Hall B', 'capacity': 10}, format='json')
        assert_error(response, 403, 'FORBIDDEN')

    def test_capacity_cannot_drop_below_event_slots(self, client_for, admin_user, venue, make_event):
        make_event(max_slots=40)
        response = client_for(admin_user).patch(f'/api/venues/{venue.pk}/', {'capacity': 30}, format='json')
        error = assert_error(response, 400, 'INVALID_INPUT')
        assert 'capacity' in error['details']

    def test_delete_is_soft(self, client_for, admin_user, venue):
        assert client_for(admin_user).delete(f'/api/venues/{venue.pk}/').status_code == 204
        venue.refresh_from_db()
        assert venue.is_active is False


class TestPathIds:
    def test_non_numeric_event_id_is_rejected(self, client_for, student):
        response = client_for(student).post('/api/events/abc/registrations/')
        assert_error(response, 400, 'INVALID_INPUT')

    def test_non_numeric_registration_id_is_rejected(self, client_for, admin_user):
        response = client_for(admin_user).put('/api/registrations/abc/', {'status': 'ATTENDED'}, format='json')
        assert_error(response, 400, 'INVALID_INPUT')

    def test_zero_event_id_is_rejected(self, client_for, admin_user):
        assert_error(client_for(admin_user).get('/api/events/0/'), 400, 'INVALID_INPUT')

    def test_non_numeric_id_still_requires_authentication(self, api_client):
        assert_error(api_client.get('/api/registrations/abc/'), 401, 'UNAUTHORIZED')


class TestEventCounters:
    def test_counts_follow_confirmed_and_waitlisted(self, client_for, make_user, admin_user, make_event):
        event = make_event(max_slots=1)
        first, second = make_user('first'), make_user('second')
        registration_id = client_for(first).post(f'/api/events/{event.pk}/registrations/').json()['id']
        client_for(second).post(f'/api/events/{event.pk}/registrations/')

        body = client_for(second).get(f'/api/events/{event.pk}/').json()
        assert (body['current_registrations'], body['waitlist_size']) == (1, 1)

        client_for(admin_user).put(
            f'/api/registrations/{registration_id}/', {'status': 'ATTENDED'}, format='json'
        )
        body = client_for(second).get(f'/api/events/{event.pk}/').json()
        assert (body['current_registrations'], body['waitlist_size']) == (0, 1)

        newcomer = client_for(make_user('third')).post(f'/api/events/{event.pk}/registrations/')
        assert newcomer.json()['status'] == 'CONFIRMED'
