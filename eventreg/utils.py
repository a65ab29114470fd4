from typing import Optional

from .models import RegistrationActivity, StudentProfile


def is_admin(user) -> bool:
    return bool(user and user.is_authenticated and user.is_staff)


def get_user_profile(user, create_if_missing: bool = False) -> Optional[StudentProfile]:
    """
    Safely retrieve the profile for a user. Optionally create it if missing.
    """
    if not user:
        return None

    try:
        return user.profile
    except StudentProfile.DoesNotExist:
        if create_if_missing:
            return StudentProfile.objects.create(user=user)
    return None


def log_activity(registration, action, actor=None, from_status='', reason=''):
    """Record an engine action against a registration."""
    return RegistrationActivity.objects.create(
        registration=registration,
        actor=actor,
        action=action,
        from_status=from_status or '',
        to_status=registration.status,
        reason=reason or '',
    )
