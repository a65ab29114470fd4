"""
Error taxonomy for the API.

Every error leaves the API in the same envelope::

    {"success": false, "error": {"code": ..., "message": ..., "timestamp": ...}}

Service code raises the ``APIException`` subclasses below with a stable code
from ``ErrorCode``; ``api_exception_handler`` renders them and maps DRF,
Django and database exceptions onto the same codes.
"""
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import DatabaseError
from django.http import Http404
from django.utils import timezone
from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ErrorCode:
    # Validation
    INVALID_INPUT = 'INVALID_INPUT'
    MISSING_FIELD = 'MISSING_FIELD'
    INVALID_EMAIL = 'INVALID_EMAIL'
    INVALID_PASSWORD = 'INVALID_PASSWORD'
    INVALID_GRADUATION_YEAR = 'INVALID_GRADUATION_YEAR'
    INVALID_PHONE = 'INVALID_PHONE'
    INVALID_USERNAME = 'INVALID_USERNAME'
    INVALID_BRANCH = 'INVALID_BRANCH'
    INVALID_STATUS = 'INVALID_STATUS'
    INVALID_MAX_SLOTS = 'INVALID_MAX_SLOTS'
    INVALID_TIME_RANGE = 'INVALID_TIME_RANGE'
    INCOMPLETE_EVENT = 'INCOMPLETE_EVENT'
    NO_UPDATE_FIELDS = 'NO_UPDATE_FIELDS'

    # Authentication & authorization
    UNAUTHORIZED = 'UNAUTHORIZED'
    FORBIDDEN = 'FORBIDDEN'

    # Not found
    NOT_FOUND = 'NOT_FOUND'
    USER_NOT_FOUND = 'USER_NOT_FOUND'
    EVENT_NOT_FOUND = 'EVENT_NOT_FOUND'
    VENUE_NOT_FOUND = 'VENUE_NOT_FOUND'
    REGISTRATION_NOT_FOUND = 'REGISTRATION_NOT_FOUND'

    # Conflicts
    DUPLICATE_EMAIL = 'DUPLICATE_EMAIL'
    DUPLICATE_STUDENT_ID = 'DUPLICATE_STUDENT_ID'
    DUPLICATE_USERNAME = 'DUPLICATE_USERNAME'
    ALREADY_REGISTERED = 'ALREADY_REGISTERED'
    ALREADY_CANCELLED = 'ALREADY_CANCELLED'
    EVENT_NOT_OPEN = 'EVENT_NOT_OPEN'
    CAPACITY_EXCEEDED = 'CAPACITY_EXCEEDED'
    INVALID_STATUS_TRANSITION = 'INVALID_STATUS_TRANSITION'
    EVENT_HAS_REGISTRATIONS = 'EVENT_HAS_REGISTRATIONS'
    EVENT_LOCKED = 'EVENT_LOCKED'
    EVENT_ALREADY_PUBLISHED = 'EVENT_ALREADY_PUBLISHED'
    EVENT_NOT_PUBLISHED = 'EVENT_NOT_PUBLISHED'

    # Server
    DATABASE_ERROR = 'DATABASE_ERROR'
    INTERNAL_ERROR = 'INTERNAL_ERROR'
    METHOD_NOT_ALLOWED = 'METHOD_NOT_ALLOWED'


class ServiceError(exceptions.APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = ErrorCode.INTERNAL_ERROR
    default_detail = 'Internal server error'

    def __init__(self, code=None, message=None, details=None):
        self.error_code = code or self.default_code
        self.details = details
        super().__init__(detail=message or self.default_detail, code=self.error_code)


class ValidationFailed(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = ErrorCode.INVALID_INPUT
    default_detail = 'Invalid input provided'


class Unauthorized(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = ErrorCode.UNAUTHORIZED
    default_detail = 'Unauthorized - Missing or invalid authentication'


class Forbidden(ServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = ErrorCode.FORBIDDEN
    default_detail = 'You do not have permission to perform this action'


class NotFound(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = ErrorCode.NOT_FOUND
    default_detail = 'Resource not found'


class Conflict(ServiceError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'CONFLICT'
    default_detail = 'Request conflicts with the current state'


class ServerError(ServiceError):
    pass


# DRF's own exceptions, keyed by class, mapped onto our codes
DRF_CODES = (
    (exceptions.NotAuthenticated, ErrorCode.UNAUTHORIZED),
    (exceptions.AuthenticationFailed, ErrorCode.UNAUTHORIZED),
    (exceptions.PermissionDenied, ErrorCode.FORBIDDEN),
    (exceptions.NotFound, ErrorCode.NOT_FOUND),
    (exceptions.MethodNotAllowed, ErrorCode.METHOD_NOT_ALLOWED),
    (exceptions.ValidationError, ErrorCode.INVALID_INPUT),
    (exceptions.ParseError, ErrorCode.INVALID_INPUT),
)


def error_body(code, message, details=None):
    error = {
        'code': code,
        'message': message,
        'timestamp': timezone.now().isoformat(),
    }
    if details:
        error['details'] = details
    return {'success': False, 'error': error}


def _drf_code(exc):
    for exc_class, code in DRF_CODES:
        if isinstance(exc, exc_class):
            return code
    return str(exc.default_code).upper()


def api_exception_handler(exc, context):
    if isinstance(exc, Http404):
        exc = exceptions.NotFound(*exc.args)
    elif isinstance(exc, DjangoPermissionDenied):
        exc = exceptions.PermissionDenied(*exc.args)

    if isinstance(exc, DjangoValidationError):
        details = exc.message_dict if hasattr(exc, 'error_dict') else {'non_field_errors': exc.messages}
        return Response(
            error_body(ErrorCode.INVALID_INPUT, 'Invalid input provided', details),
            status=status.HTTP_400_BAD_REQUEST
        )

    response = exception_handler(exc, context)

    if response is None:
        view = context.get('view')
        view_name = view.__class__.__name__ if view else 'unknown view'
        logger.error(f"Unhandled error in {view_name}: {exc}", exc_info=exc)
        if isinstance(exc, DatabaseError):
            code, message = ErrorCode.DATABASE_ERROR, 'Database error occurred'
        else:
            code, message = ErrorCode.INTERNAL_ERROR, 'Internal server error'
        return Response(error_body(code, message), status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if isinstance(exc, ServiceError):
        if response.status_code >= 500:
            logger.error(f"Service error {exc.error_code}: {exc.detail}")
        response.data = error_body(exc.error_code, str(exc.detail), exc.details)
        return response

    if isinstance(exc, exceptions.ValidationError):
        response.data = error_body(ErrorCode.INVALID_INPUT, 'Invalid input provided', exc.detail)
        return response

    detail = exc.detail
    message = str(detail.get('detail', detail)) if isinstance(detail, dict) else str(detail)
    response.data = error_body(_drf_code(exc), message)
    return response
