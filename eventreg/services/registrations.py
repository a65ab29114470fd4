"""
Event capacity and waitlist engine.

Every operation that can change how many registrations of an event are
confirmed runs in one transaction that first locks the event row.
Registration rows are only locked after their event, so concurrent
requests for the same event are serialised and cannot deadlock on each other.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import Count

from ..exceptions import Conflict, ErrorCode, Forbidden, NotFound, ValidationFailed
from ..models import Event, Registration, RegistrationStatus
from ..transitions import validate_transition
from ..utils import is_admin, log_activity

logger = logging.getLogger(__name__)


def _lock_event(event_id):
    try:
        return Event.objects.select_for_update().get(pk=event_id)
    except Event.DoesNotExist:
        raise NotFound(ErrorCode.EVENT_NOT_FOUND, 'Event not found')


def _confirmed_count(event):
    return Registration.objects.filter(event=event, status=RegistrationStatus.CONFIRMED).count()


def _load_registration(registration_id, event_id=None):
    """
    Lock the owning event, then the registration itself.
    Must be called inside a transaction.
    """
    lookup = Registration.objects.filter(pk=registration_id)
    if event_id is not None:
        lookup = lookup.filter(event_id=event_id)
    owning_event_id = lookup.values_list('event_id', flat=True).first()
    if owning_event_id is None:
        raise NotFound(ErrorCode.REGISTRATION_NOT_FOUND, 'Registration not found')

    event = _lock_event(owning_event_id)
    registration = Registration.objects.select_for_update().select_related('user').get(pk=registration_id)
    return event, registration


def _promote_next_waitlisted(event, actor=None):
    """
    Move the earliest waitlisted registration of ``event`` to CONFIRMED if a
    slot is free. The caller must hold the event lock.
    """
    if _confirmed_count(event) >= event.max_slots:
        return None

    next_in_line = (
        Registration.objects
        .select_for_update()
        .filter(event=event, status=RegistrationStatus.WAITLISTED)
        .order_by('registered_at', 'id')
        .first()
    )
    if next_in_line is None:
        return None

    next_in_line.status = RegistrationStatus.CONFIRMED
    next_in_line.save(update_fields=['status', 'updated_at'])
    log_activity(next_in_line, 'promoted', actor=actor, from_status=RegistrationStatus.WAITLISTED)
    logger.info(f"Promoted registration {next_in_line.pk} from waitlist for event {event.pk}")
    return next_in_line


def register(user, event_id):
    """
    Register ``user`` for an event. The registration is CONFIRMED while the
    event has a free slot and WAITLISTED once it is full.
    """
    try:
        with transaction.atomic():
            event = _lock_event(event_id)

            if not event.is_open_for_registration:
                raise Conflict(ErrorCode.EVENT_NOT_OPEN, 'Event is not open for registration')

            already_active = Registration.objects.filter(
                event=event, user=user
            ).exclude(status=RegistrationStatus.CANCELLED).exists()
            if already_active:
                raise Conflict(ErrorCode.ALREADY_REGISTERED, 'User already registered for this event')

            if _confirmed_count(event) < event.max_slots:
                status, action = RegistrationStatus.CONFIRMED, 'registered'
            else:
                status, action = RegistrationStatus.WAITLISTED, 'waitlisted'

            registration = Registration.objects.create(event=event, user=user, status=status)
            log_activity(registration, action, actor=user)
    except IntegrityError:
        # The partial unique index on (user, event) caught a duplicate
        raise Conflict(ErrorCode.ALREADY_REGISTERED, 'User already registered for this event')

    logger.info(f"User {user.pk} {action} for event {event_id} (registration {registration.pk})")
    return registration


def cancel(registration_id, actor, event_id=None):
    """
    Cancel a registration on behalf of its owner or an admin. Cancelling a
    CONFIRMED registration frees a slot, which goes to the earliest
    waitlisted registration of the same event.
    """
    with transaction.atomic():
        event, registration = _load_registration(registration_id, event_id)

        if registration.user_id != actor.pk and not is_admin(actor):
            raise Forbidden(ErrorCode.FORBIDDEN, 'You can only cancel your own registrations')
        if registration.status == RegistrationStatus.CANCELLED:
            raise Conflict(ErrorCode.ALREADY_CANCELLED, 'Registration is already cancelled')

        previous = registration.status
        validate_transition(previous, RegistrationStatus.CANCELLED)

        registration.status = RegistrationStatus.CANCELLED
        registration.save(update_fields=['status', 'updated_at'])
        log_activity(registration, 'cancelled', actor=actor, from_status=previous)

        if previous == RegistrationStatus.CONFIRMED:
            _promote_next_waitlisted(event, actor=actor)

    logger.info(f"Registration {registration.pk} cancelled by user {actor.pk}")
    return registration


def update_status(registration_id, new_status, actor, reason=None):
    """
    Admin status change. Moving into CONFIRMED never overshoots the event's
    capacity; cancelling a CONFIRMED registration promotes from the waitlist.
    """
    if not is_admin(actor):
        raise Forbidden(ErrorCode.FORBIDDEN, 'Only admins can update registration status')

    try:
        new_status = RegistrationStatus(str(new_status).strip().upper())
    except ValueError:
        raise ValidationFailed(
            ErrorCode.INVALID_STATUS,
            f'Status must be one of: {", ".join(RegistrationStatus.values)}'
        )

    with transaction.atomic():
        event, registration = _load_registration(registration_id)
        previous = registration.status
        validate_transition(previous, new_status)

        if new_status == RegistrationStatus.CONFIRMED and _confirmed_count(event) >= event.max_slots:
            raise Conflict(ErrorCode.CAPACITY_EXCEEDED, 'Event has no free slot to confirm this registration')

        registration.status = new_status
        registration.save(update_fields=['status', 'updated_at'])
        log_activity(registration, 'status_changed', actor=actor, from_status=previous, reason=reason)

        if previous == RegistrationStatus.CONFIRMED and new_status == RegistrationStatus.CANCELLED:
            _promote_next_waitlisted(event, actor=actor)

    logger.info(f"Registration {registration.pk} moved {previous} -> {new_status} by admin {actor.pk}")
    return registration


def get_event_registration_stats(event_id):
    if not Event.objects.filter(pk=event_id).exists():
        raise NotFound(ErrorCode.EVENT_NOT_FOUND, 'Event not found')

    counts = {status: 0 for status in RegistrationStatus.values}
    rows = (
        Registration.objects
        .filter(event_id=event_id)
        .values('status')
        .annotate(count=Count('id'))
    )
    for row in rows:
        counts[row['status']] = row['count']

    return {
        'event_id': int(event_id),
        'counts': counts,
        'total': sum(counts.values()),
    }


def get_event_registrations(event_id):
    if not Event.objects.filter(pk=event_id).exists():
        raise NotFound(ErrorCode.EVENT_NOT_FOUND, 'Event not found')
    return Registration.objects.filter(event_id=event_id).select_related('user__profile', 'event')


def get_registration_for(registration_id, actor):
    try:
        registration = Registration.objects.select_related('event').get(pk=registration_id)
    except Registration.DoesNotExist:
        raise NotFound(ErrorCode.REGISTRATION_NOT_FOUND, 'Registration not found')
    if registration.user_id != actor.pk and not is_admin(actor):
        raise Forbidden(ErrorCode.FORBIDDEN, 'You can only view your own registrations')
    return registration
