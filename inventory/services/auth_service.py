"""
Authentication service for user management.

Handles registration and email/password login.
"""
import logging
import re
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from inventory.exceptions import AuthenticationError, ValidationError
from inventory.models import AppUser, UserRole, ROLE_HIERARCHY

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
MIN_PASSWORD_LENGTH = 8


def register_user(session, email: str, password: str, name: str,
                  role: Optional[str] = None) -> AppUser:
    """
    Create a user.

    The first user of an empty installation becomes admin; later users get
    ``role`` (default staff).

    Raises:
        ValidationError: invalid email/password/role or email already registered
    """
    email = (email or '').strip().lower()
    name = (name or '').strip()

    if not EMAIL_PATTERN.match(email):
        raise ValidationError('Invalid email address')
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must have at least {MIN_PASSWORD_LENGTH} characters')
    if not name:
        raise ValidationError('Name is required')
    if role is not None and role not in ROLE_HIERARCHY:
        raise ValidationError(f'Invalid role "{role}"')

    if session.query(AppUser).filter(func.lower(AppUser.email) == email).first():
        raise ValidationError('This email is already registered')

    if session.query(AppUser.id).first() is None:
        role = UserRole.ADMIN.value
    elif role is None:
        role = UserRole.STAFF.value

    user = AppUser(email=email, name=name, role=role, active=True)
    user.set_password(password)

    try:
        session.add(user)
        session.commit()
    except IntegrityError:
        # Race condition: same email registered concurrently
        session.rollback()
        raise ValidationError('This email is already registered')

    logger.info(f"User registered: {email} role={role}")
    return user


def authenticate(session, email: str, password: str) -> AppUser:
    """
    Check credentials.

    Raises:
        AuthenticationError: unknown email, wrong password or inactive user
    """
    email = (email or '').strip().lower()
    user = session.query(AppUser).filter(func.lower(AppUser.email) == email).first()

    if user is None or not user.check_password(password or ''):
        logger.warning(f"Failed login for {email}")
        raise AuthenticationError('Invalid email or password')
    if not user.active:
        logger.warning(f"Login attempt for inactive user {email}")
        raise AuthenticationError('This account is disabled')

    return user


def get_active_user(session, user_id: int) -> Optional[AppUser]:
    return session.query(AppUser).filter_by(id=user_id, active=True).first()
