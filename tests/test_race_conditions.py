"""
Concurrent registrations and cancellations against one event.

Row locks are only meaningful on PostgreSQL; SQLite serialises writers by
locking the whole database, so these tests are skipped there.
"""
import threading
from datetime import timedelta

import pytest
from django.db import connection, connections
from django.utils import timezone

from eventreg.exceptions import ServiceError
from eventreg.models import Event, Registration, RegistrationStatus as S, Venue
from eventreg.services import registrations as engine

pytestmark = [
    pytest.mark.django_db(transaction=True),
    pytest.mark.skipif(connection.vendor != 'postgresql', reason='row locking needs PostgreSQL'),
]


def run_concurrently(target, args_list):
    errors = []
    barrier = threading.Barrier(len(args_list))

    def worker(*args):
        barrier.wait()
        try:
            target(*args)
        except ServiceError as exc:
            errors.append(exc)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker, args=args) for args in args_list]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return errors


@pytest.fixture
def small_event(db):
    venue = Venue.objects.create(name='Race Test Hall', capacity=100)
    start = timezone.now() + timedelta(days=30)
    return Event.objects.create(
        name='Race Condition Test Event',
        start_time=start,
        end_time=start + timedelta(hours=2),
        max_slots=3,
        venue=venue,
        status=Event.STATUS_ACTIVE,
        is_published=True,
    )


def test_concurrent_registrations_never_overbook(small_event, make_user):
    users = [make_user(f'race_test_user_{i:02d}') for i in range(10)]

    errors = run_concurrently(engine.register, [(user, small_event.pk) for user in users])

    assert errors == []
    assert Registration.objects.filter(event=small_event, status=S.CONFIRMED).count() == 3
    assert Registration.objects.filter(event=small_event, status=S.WAITLISTED).count() == 7


def test_concurrent_duplicate_registration_creates_one_row(small_event, make_user):
    user = make_user('race_test_dup')

    errors = run_concurrently(engine.register, [(user, small_event.pk)] * 5)

    assert len(errors) == 4
    assert Registration.objects.filter(event=small_event, user=user).count() == 1


def test_concurrent_cancellations_promote_each_waitlisted_once(small_event, make_user):
    users = [make_user(f'race_test_user_{i:02d}') for i in range(6)]
    registrations = [engine.register(user, small_event.pk) for user in users]
    confirmed = [r for r in registrations if r.status == S.CONFIRMED]

    errors = run_concurrently(engine.cancel, [(r.pk, r.user) for r in confirmed])

    assert errors == []
    promoted = Registration.objects.filter(event=small_event, status=S.CONFIRMED)
    assert promoted.count() == 3
    assert set(promoted.values_list('user__username', flat=True)) == {u.username for u in users[3:]}
    assert not Registration.objects.filter(event=small_event, status=S.WAITLISTED).exists()
