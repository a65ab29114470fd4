"""
Student accounts: signup, profile lookup and profile update.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from ..exceptions import Conflict, ErrorCode, Forbidden, NotFound, Unauthorized, ValidationFailed
from ..models import Branch, StudentProfile
from ..utils import get_user_profile, is_admin

logger = logging.getLogger(__name__)

User = get_user_model()


def _check_duplicates(data):
    if User.objects.filter(email__iexact=data['email']).exists():
        raise Conflict(ErrorCode.DUPLICATE_EMAIL, 'Email already registered')
    if StudentProfile.objects.filter(student_id__iexact=data['student_id']).exists():
        raise Conflict(ErrorCode.DUPLICATE_STUDENT_ID, 'Student ID already exists')
    if User.objects.filter(username__iexact=data['username']).exists():
        raise Conflict(ErrorCode.DUPLICATE_USERNAME, 'Username already exists')


def register_user(data):
    """
    Create a user and its profile from already validated signup data.
    """
    _check_duplicates(data)

    try:
        branch = Branch.objects.get(pk=data['branch_id'])
    except Branch.DoesNotExist:
        raise ValidationFailed(ErrorCode.INVALID_BRANCH, 'Invalid Branch ID')

    try:
        with transaction.atomic():
            user = User.objects.create_user(
                username=data['username'],
                email=data['email'],
                password=data['password'],
            )
            # A signal might have already created the profile
            profile = get_user_profile(user, create_if_missing=True)
            profile.student_id = data['student_id']
            profile.full_name = data['full_name']
            profile.phone = data['phone']
            profile.branch = branch
            profile.graduation_year = data['graduation_year']
            profile.save()
    except IntegrityError:
        # Lost a race against a concurrent signup with the same identifiers
        _check_duplicates(data)
        raise Conflict(ErrorCode.DUPLICATE_EMAIL, 'Email, username or student ID already exists')

    logger.info(f"Registered user {user.pk} ({profile.student_id})")
    return user


def get_user(user_id, actor):
    if actor.pk != user_id and not is_admin(actor):
        raise Forbidden(ErrorCode.FORBIDDEN, 'You can only view your own profile')
    try:
        return User.objects.select_related('profile__branch').get(pk=user_id)
    except User.DoesNotExist:
        raise NotFound(ErrorCode.USER_NOT_FOUND, 'User not found')


def update_user_profile(user_id, actor, data):
    """
    Update full name, phone or password. Changing the password requires the
    current one.
    """
    if actor.pk != user_id:
        raise Forbidden(ErrorCode.FORBIDDEN, 'You can only update your own profile')

    with transaction.atomic():
        try:
            user = User.objects.select_for_update().get(pk=user_id)
        except User.DoesNotExist:
            raise NotFound(ErrorCode.USER_NOT_FOUND, 'User not found')
        profile = get_user_profile(user, create_if_missing=True)

        if 'password' in data:
            if not user.check_password(data['old_password']):
                raise Unauthorized(ErrorCode.UNAUTHORIZED, 'Old password is incorrect')
            user.set_password(data['password'])
            user.save(update_fields=['password'])

        if 'full_name' in data:
            profile.full_name = data['full_name']
        if 'phone' in data:
            profile.phone = data['phone']
        profile.save()

    logger.info(f"Updated profile of user {user.pk}: {', '.join(sorted(k for k in data if k != 'old_password'))}")
    return User.objects.select_related('profile__branch').get(pk=user_id)
