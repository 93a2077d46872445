"""Input rules for manual registration, login and profile updates."""
from __future__ import annotations

import re
from typing import Any

from src.domain.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_SYMBOLS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?`~"
MIN_PASSWORD_LENGTH = 8
MIN_AGE = 13


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def email_violations(email: str | None) -> list[str]:
    if not email or not EMAIL_PATTERN.match(email.strip()):
        return ["email must be a valid email address"]
    return []


def password_violations(password: str) -> list[str]:
    problems = []
    if len(password) < MIN_PASSWORD_LENGTH:
        problems.append(f"password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if not any(c.islower() for c in password):
        problems.append("password must contain a lowercase letter")
    if not any(c.isupper() for c in password):
        problems.append("password must contain an uppercase letter")
    if not any(c.isdigit() for c in password):
        problems.append("password must contain a digit")
    if not any(c in PASSWORD_SYMBOLS for c in password):
        problems.append("password must contain a symbol")
    return problems


def parse_age(age: Any) -> tuple[int | None, list[str]]:
    """Coerce an optional age; blank input counts as not supplied."""
    if age is None or (isinstance(age, str) and not age.strip()):
        return None, []
    if isinstance(age, bool):
        return None, ["age must be an integer"]
    try:
        value = int(age)
    except (TypeError, ValueError):
        return None, ["age must be an integer"]
    if isinstance(age, float) and age != value:
        return None, ["age must be an integer"]
    if value < MIN_AGE:
        return None, [f"age must be at least {MIN_AGE}"]
    return value, []


def validate_registration(email: str | None, password: str | None, age: Any = None) -> int | None:
    """Fail fast on the first bad registration, listing every broken rule.

    Returns the parsed age.
    """
    if not email or not password:
        raise ValidationError("Email and password are required")
    problems = email_violations(email) + password_violations(password)
    parsed_age, age_problems = parse_age(age)
    problems += age_problems
    if problems:
        raise ValidationError(problems)
    return parsed_age


def validate_login(email: str | None, password: str | None) -> None:
    if not email or not password:
        raise ValidationError("Email and password are required")
    problems = email_violations(email)
    if problems:
        raise ValidationError(problems)
