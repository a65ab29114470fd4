"""
Admin-side event management: create, update, publish, unpublish, delete.
"""
import logging

from django.db import transaction
from django.db.models import Count, Q

from ..exceptions import Conflict, ErrorCode, NotFound, ValidationFailed
from ..models import Event, RegistrationStatus, Venue

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    'name', 'description', 'start_time', 'end_time',
    'max_slots', 'registration_fee', 'venue', 'status',
)


def annotated_events():
    return Event.objects.select_related('venue').annotate(
        current_registrations=Count(
            'registrations', filter=Q(registrations__status=RegistrationStatus.CONFIRMED)
        ),
        waitlist_size=Count(
            'registrations', filter=Q(registrations__status=RegistrationStatus.WAITLISTED)
        ),
    )


def list_events(filters=None, published_only=False):
    filters = filters or {}
    queryset = annotated_events()
    if published_only:
        queryset = queryset.filter(is_published=True)
    if filters.get('status'):
        queryset = queryset.filter(status=filters['status'])
    if filters.get('is_published') is not None:
        queryset = queryset.filter(is_published=filters['is_published'])
    if filters.get('venue'):
        queryset = queryset.filter(venue_id=filters['venue'])
    return queryset.order_by('-start_time')


def get_event(event_id, published_only=False):
    queryset = annotated_events()
    if published_only:
        queryset = queryset.filter(is_published=True)
    try:
        return queryset.get(pk=event_id)
    except Event.DoesNotExist:
        raise NotFound(ErrorCode.EVENT_NOT_FOUND, 'Event not found')


def _get_venue(venue_id):
    try:
        return Venue.objects.get(pk=venue_id, is_active=True)
    except Venue.DoesNotExist:
        raise NotFound(ErrorCode.VENUE_NOT_FOUND, 'Venue does not exist')


def _check_event_rules(venue, max_slots, start_time, end_time):
    if max_slots > venue.capacity:
        raise ValidationFailed(
            ErrorCode.INVALID_MAX_SLOTS,
            f'Max slots ({max_slots}) cannot exceed venue capacity ({venue.capacity})'
        )
    if start_time >= end_time:
        raise ValidationFailed(ErrorCode.INVALID_TIME_RANGE, 'End time must be after start time')


def _has_confirmed_registrations(event):
    return event.registrations.filter(status=RegistrationStatus.CONFIRMED).exists()


def create_event(data):
    with transaction.atomic():
        venue = _get_venue(data['venue_id'])
        _check_event_rules(venue, data['max_slots'], data['start_time'], data['end_time'])

        event = Event.objects.create(
            name=data['name'],
            description=data.get('description', ''),
            start_time=data['start_time'],
            end_time=data['end_time'],
            max_slots=data['max_slots'],
            registration_fee=data.get('registration_fee') or 0,
            status=data.get('status') or Event.STATUS_DRAFT,
            venue=venue,
        )

    logger.info(f"Created event {event.pk} '{event.name}' at venue {venue.pk}")
    return get_event(event.pk)


def update_event(event_id, data):
    """
    Apply a partial update. Structural fields (time window, slots, venue)
    are frozen once the event is published or has confirmed registrations.
    """
    data = dict(data)
    if 'venue_id' in data:
        data['venue'] = data.pop('venue_id')
    changes = {key: value for key, value in data.items() if key in UPDATABLE_FIELDS}
    if not changes:
        raise ValidationFailed(ErrorCode.NO_UPDATE_FIELDS, 'No valid fields to update')

    with transaction.atomic():
        try:
            event = Event.objects.select_for_update().get(pk=event_id)
        except Event.DoesNotExist:
            raise NotFound(ErrorCode.EVENT_NOT_FOUND, 'Event not found')

        current = {
            'start_time': event.start_time,
            'end_time': event.end_time,
            'max_slots': event.max_slots,
            'venue': event.venue_id,
        }
        structural = [
            field for field in Event.STRUCTURAL_FIELDS
            if field in changes and changes[field] != current[field]
        ]
        if structural and (event.is_published or _has_confirmed_registrations(event)):
            raise Conflict(
                ErrorCode.EVENT_LOCKED,
                'Cannot change schedule, slots or venue of a published event or one with confirmed registrations',
                {'fields': structural}
            )

        venue = _get_venue(changes['venue']) if 'venue' in changes else event.venue
        _check_event_rules(
            venue,
            changes.get('max_slots', event.max_slots),
            changes.get('start_time', event.start_time),
            changes.get('end_time', event.end_time),
        )

        changes['venue'] = venue
        for field, value in changes.items():
            setattr(event, field, value)
        event.save()

    logger.info(f"Updated event {event.pk}: {', '.join(sorted(data))}")
    return get_event(event.pk)


def publish_event(event_id):
    with transaction.atomic():
        try:
            event = Event.objects.select_for_update().get(pk=event_id)
        except Event.DoesNotExist:
            raise NotFound(ErrorCode.EVENT_NOT_FOUND, 'Event not found')

        if event.is_published:
            raise Conflict(ErrorCode.EVENT_ALREADY_PUBLISHED, 'Event is already published')
        if not (event.venue_id and event.start_time and event.end_time and event.max_slots):
            raise ValidationFailed(
                ErrorCode.INCOMPLETE_EVENT,
                'Event must have venue, start time, end time and slots to be published'
            )

        event.is_published = True
        event.save(update_fields=['is_published', 'updated_at'])

    logger.info(f"Published event {event.pk}")
    return get_event(event.pk)


def unpublish_event(event_id):
    with transaction.atomic():
        try:
            event = Event.objects.select_for_update().get(pk=event_id)
        except Event.DoesNotExist:
            raise NotFound(ErrorCode.EVENT_NOT_FOUND, 'Event not found')

        if not event.is_published:
            raise Conflict(ErrorCode.EVENT_NOT_PUBLISHED, 'Event is not published')

        event.is_published = False
        event.save(update_fields=['is_published', 'updated_at'])

    logger.info(f"Unpublished event {event.pk}")
    return get_event(event.pk)


def delete_event(event_id):
    with transaction.atomic():
        try:
            event = Event.objects.select_for_update().get(pk=event_id)
        except Event.DoesNotExist:
            raise NotFound(ErrorCode.EVENT_NOT_FOUND, 'Event not found')

        # Registrations are never removed, so any of them pins the event
        if event.registrations.exists():
            raise Conflict(
                ErrorCode.EVENT_HAS_REGISTRATIONS,
                'Cannot delete an event with registrations; set its status to cancelled instead'
            )

        event.delete()

    logger.info(f"Deleted event {event_id}")
