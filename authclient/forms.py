"""
Login and registration form helpers.

Input checks run before any request is sent; rejection bodies returned by the
auth service are turned into messages for display.
"""

import re
from typing import Any, List, Optional

from authshared.models import AuthResult

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')

GENERIC_LOGIN_FAILURE = "Login failed. Please try again."


def validate_login_form(username: str, password: str) -> List[str]:
    """Return the input errors for a login attempt, empty if valid."""
    if not username or not password:
        return ["Both fields are required."]
    return []


def validate_registration_form(
    username: str,
    email: str,
    password: str,
    confirm_password: str
) -> List[str]:
    """
    Return the input errors for a registration attempt, empty if valid.

    All checks run so the user sees every problem at once.
    """
    errors = []

    if not username or not email or not password or not confirm_password:
        errors.append("All fields are required.")

    if not EMAIL_PATTERN.match(email or ""):
        errors.append("Please enter a valid email address.")

    if password != confirm_password:
        errors.append("Passwords do not match.")

    return errors


def flatten_error_messages(data: Optional[Any]) -> List[str]:
    """
    Collect field-level messages from a rejection body.

    Only list-valued fields contribute, in field order. For example
    ``{"username": ["taken"], "email": ["invalid"]}`` gives
    ``["taken", "invalid"]``.
    """
    if not isinstance(data, dict):
        return []

    messages: List[str] = []
    for value in data.values():
        if isinstance(value, list):
            messages.extend(str(item) for item in value)
    return messages


def describe_login_failure(result: AuthResult) -> str:
    """Pick the message to show for a failed login."""
    if isinstance(result.data, dict) and result.data.get('detail'):
        return str(result.data['detail'])
    if result.message:
        return result.message
    return GENERIC_LOGIN_FAILURE
