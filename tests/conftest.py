from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from eventreg.models import Branch, Event, Venue

User = get_user_model()


@pytest.fixture(autouse=True)
def fast_password_hasher(settings):
    settings.PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']


@pytest.fixture
def branch(db):
    return Branch.objects.create(name='Computer Science', short_code='CSE')


@pytest.fixture
def venue(db):
    return Venue.objects.create(name='Seminar Hall', location='Library Building', capacity=50)


@pytest.fixture
def make_user(db):
    def _make_user(username, is_staff=False, password='Secret@123'):
        return User.objects.create_user(
            username=username,
            email=f'{username}@example.com',
            password=password,
            is_staff=is_staff,
        )
    return _make_user


@pytest.fixture
def admin_user(make_user):
    return make_user('admin', is_staff=True)


@pytest.fixture
def student(make_user):
    return make_user('alice')


@pytest.fixture
def other_student(make_user):
    return make_user('bob')


@pytest.fixture
def make_event(venue):
    def _make_event(max_slots=2, is_published=True, status=Event.STATUS_ACTIVE, **extra):
        start = timezone.now() + timedelta(days=7)
        fields = {
            'name': 'Robotics Workshop',
            'start_time': start,
            'end_time': start + timedelta(hours=3),
            'max_slots': max_slots,
            'venue': venue,
            'status': status,
            'is_published': is_published,
        }
        fields.update(extra)
        return Event.objects.create(**fields)
    return _make_event


@pytest.fixture
def event(make_event):
    return make_event()


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    def _client_for(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return _client_for
