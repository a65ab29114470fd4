"""
Field-level input checks.

Each validator returns the normalised value or raises ``ValidationFailed``
with a stable error code. None of them touch the database.
"""
import re

from .exceptions import ErrorCode, ValidationFailed

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_RE = re.compile(r'^\+?[1-9]\d{1,14}$')  # E.164
STUDENT_ID_RE = re.compile(r'^[A-Za-z0-9]{3,20}$')
USERNAME_RE = re.compile(r'^[a-z0-9_.-]+$')
SPECIAL_CHARS_RE = re.compile(r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>/?]')

PASSWORD_MIN_LENGTH = 8
GRADUATION_YEAR_RANGE = (2020, 2035)


def _required_string(value, message):
    if not value or not isinstance(value, str):
        raise ValidationFailed(ErrorCode.MISSING_FIELD, message)
    return value.strip()


def validate_email(email):
    email = _required_string(email, 'Email is required')
    if not EMAIL_RE.match(email):
        raise ValidationFailed(ErrorCode.INVALID_EMAIL, 'Invalid email format')
    return email.lower()


def validate_phone(phone):
    phone = _required_string(phone, 'Phone number is required')
    if not PHONE_RE.match(phone):
        raise ValidationFailed(
            ErrorCode.INVALID_PHONE,
            'Invalid phone number format. Use E.164 format (e.g., +919876543210)'
        )
    return phone


def validate_student_id(student_id):
    student_id = _required_string(student_id, 'Student ID is required').upper()
    if not STUDENT_ID_RE.match(student_id):
        raise ValidationFailed(ErrorCode.INVALID_INPUT, 'Student ID must be alphanumeric, 3-20 characters')
    return student_id


def validate_password(password):
    """
    Check password strength: at least 8 characters with an uppercase letter,
    a lowercase letter, a digit and a special character. Every unmet rule is
    reported in ``details['requirements']``.
    """
    if not password or not isinstance(password, str):
        raise ValidationFailed(ErrorCode.MISSING_FIELD, 'Password is required')

    unmet = []
    if len(password) < PASSWORD_MIN_LENGTH:
        unmet.append(f'At least {PASSWORD_MIN_LENGTH} characters')
    if not re.search(r'[A-Z]', password):
        unmet.append('At least one uppercase letter (A-Z)')
    if not re.search(r'[a-z]', password):
        unmet.append('At least one lowercase letter (a-z)')
    if not re.search(r'\d', password):
        unmet.append('At least one number (0-9)')
    if not SPECIAL_CHARS_RE.search(password):
        unmet.append('At least one special character (!@#$%^&*)')

    if unmet:
        raise ValidationFailed(
            ErrorCode.INVALID_PASSWORD,
            'Password does not meet security requirements',
            {'requirements': unmet}
        )
    return password


def validate_graduation_year(year):
    if year is None or year == '':
        raise ValidationFailed(ErrorCode.MISSING_FIELD, 'Graduation year is required')
    try:
        year = int(year)
    except (TypeError, ValueError):
        year = None
    low, high = GRADUATION_YEAR_RANGE
    if year is None or not low <= year <= high:
        raise ValidationFailed(
            ErrorCode.INVALID_GRADUATION_YEAR,
            f'Graduation year must be between {low} and {high}'
        )
    return year


def validate_full_name(name):
    name = _required_string(name, 'Full name is required')
    if not 3 <= len(name) <= 100:
        raise ValidationFailed(ErrorCode.INVALID_INPUT, 'Full name must be between 3 and 100 characters')
    return name


def validate_username(username):
    username = _required_string(username, 'Username is required').lower()
    if not 3 <= len(username) <= 20:
        raise ValidationFailed(ErrorCode.INVALID_USERNAME, 'Username must be between 3 and 20 characters')
    if not USERNAME_RE.match(username):
        raise ValidationFailed(
            ErrorCode.INVALID_USERNAME,
            'Username can only contain letters, numbers, underscores, dots, and hyphens'
        )
    return username


def validate_positive_integer(value, field_name):
    if value is None or value == '':
        raise ValidationFailed(ErrorCode.MISSING_FIELD, f'{field_name} is missing')
    if isinstance(value, bool):
        value = None
    try:
        number = int(value)
    except (TypeError, ValueError):
        number = 0
    if number <= 0:
        raise ValidationFailed(ErrorCode.INVALID_INPUT, f'{field_name} must be a positive integer')
    return number


def require_body(data):
    if not isinstance(data, dict):
        raise ValidationFailed(ErrorCode.INVALID_INPUT, 'Request body must be a valid JSON object')
    if not data:
        raise ValidationFailed(ErrorCode.INVALID_INPUT, 'Request body cannot be empty')
    return data


def validate_signup(data):
    require_body(data)
    return {
        'student_id': validate_student_id(data.get('student_id')),
        'full_name': validate_full_name(data.get('full_name')),
        'username': validate_username(data.get('username')),
        'email': validate_email(data.get('email')),
        'password': validate_password(data.get('password')),
        'phone': validate_phone(data.get('phone')),
        'graduation_year': validate_graduation_year(data.get('graduation_year')),
        'branch_id': validate_positive_integer(data.get('branch_id'), 'branch_id'),
    }


def validate_profile_update(data):
    require_body(data)
    full_name = data.get('full_name')
    phone = data.get('phone')
    password = data.get('password')

    if not full_name and not phone and not password:
        raise ValidationFailed(
            ErrorCode.INVALID_INPUT,
            'At least one field (full_name, phone, or password) must be provided'
        )

    validated = {}
    if full_name is not None:
        validated['full_name'] = validate_full_name(full_name)
    if phone is not None:
        validated['phone'] = validate_phone(phone)
    if password is not None:
        old_password = data.get('old_password')
        if not old_password:
            raise ValidationFailed(ErrorCode.MISSING_FIELD, 'Old password is required to change password')
        validated['password'] = validate_password(password)
        validated['old_password'] = old_password
    return validated
