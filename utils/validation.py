"""Request payload validation helpers."""

import re
import uuid as uuid_lib

from utils.exceptions import ValidationError

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
NAME_PATTERN = re.compile(r'^[a-zA-Z0-9\s\-_.]+$')
ALPHA_DASH_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')


def _fail(field, message):
    raise ValidationError(message, errors={field: [message]})


def get_json_body(request):
    """Return the JSON object body of ``request`` or raise ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict() if request.form else {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data, *fields):
    for field in fields:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            _fail(field, f"The {field} field is required.")


def validate_email(email, field='email'):
    """
    Validate email format.

    Raises:
        ValidationError: If email is missing or malformed
    """
    if not email:
        _fail(field, f"The {field} field is required.")

    if not isinstance(email, str) or not EMAIL_PATTERN.match(email):
        _fail(field, f"The {field} field must be a valid email address.")

    return email.strip().lower()


def validate_password(password, min_length=8, max_length=64):
    """
    Validate password length.

    Raises:
        ValidationError: If password doesn't meet requirements
    """
    if not password or not isinstance(password, str):
        _fail('password', "The password field is required.")

    if len(password) < min_length:
        _fail('password', f"The password field must be at least {min_length} characters.")

    if len(password) > max_length:
        _fail('password', f"The password field must not be greater than {max_length} characters.")

    return password


def validate_name(value, field, max_length=100):
    if not value or not isinstance(value, str):
        _fail(field, f"The {field} field is required.")
    if len(value) > max_length:
        _fail(field, f"The {field} field must not be greater than {max_length} characters.")
    if not NAME_PATTERN.match(value):
        _fail(field, f"The {field} field format is invalid.")
    return value.strip()


def validate_key(value, field='key', max_length=20):
    if value is None or value == '':
        return None
    if not isinstance(value, str) or not ALPHA_DASH_PATTERN.match(value):
        _fail(field, f"The {field} field must only contain letters, numbers, dashes, and underscores.")
    if len(value) > max_length:
        _fail(field, f"The {field} field must not be greater than {max_length} characters.")
    return value


def validate_uuid(value, field='uuid'):
    if not value:
        _fail(field, f"The {field} field is required.")
    try:
        uuid_lib.UUID(str(value))
    except ValueError:
        _fail(field, f"The {field} field must be a valid UUID.")
    return str(value)


def validate_choice(value, choices, field):
    if value not in choices:
        _fail(field, f"The selected {field} is invalid.")
    return value


def validate_int(value, field, required=True):
    if value is None or value == '':
        if required:
            _fail(field, f"The {field} field is required.")
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        _fail(field, f"The {field} field must be an integer.")


def validate_code(value, field='code', digits=6):
    if not value or not isinstance(value, str) or len(value) != digits or not value.isdigit():
        _fail(field, f"The {field} field must be {digits} digits.")
    return value
