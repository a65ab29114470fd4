"""
Registration status state machine.

ATTENDED and CANCELLED are terminal. A transition to the current status is
rejected like any other illegal edge.
"""
from .exceptions import Conflict, ErrorCode
from .models import RegistrationStatus

ALLOWED_TRANSITIONS = {
    RegistrationStatus.PENDING: frozenset({
        RegistrationStatus.CONFIRMED,
        RegistrationStatus.CANCELLED,
        RegistrationStatus.WAITLISTED,
    }),
    RegistrationStatus.CONFIRMED: frozenset({
        RegistrationStatus.ATTENDED,
        RegistrationStatus.CANCELLED,
    }),
    RegistrationStatus.WAITLISTED: frozenset({
        RegistrationStatus.CONFIRMED,
        RegistrationStatus.CANCELLED,
    }),
    RegistrationStatus.ATTENDED: frozenset(),
    RegistrationStatus.CANCELLED: frozenset(),
}


def is_valid_transition(current, new):
    return RegistrationStatus(new) in ALLOWED_TRANSITIONS[RegistrationStatus(current)]


def validate_transition(current, new):
    if not is_valid_transition(current, new):
        raise Conflict(
            ErrorCode.INVALID_STATUS_TRANSITION,
            f'Cannot change registration status from {current} to {new}',
            {'from': str(current), 'to': str(new)}
        )
