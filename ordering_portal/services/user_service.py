from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ordering_portal.config import settings
from ordering_portal.models import User, UserRole
from ordering_portal.security.passwords import check_password, hash_password
from ordering_portal.services.audit_service import log_auth_event
from ordering_portal.services.catalog_service import get_distributor, get_store


logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


class RegistrationError(ValueError):
    pass


class PermissionDeniedError(ValueError):
    pass


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.execute(select(User).where(User.username == username)).scalar_one_or_none()


def _create_user(
    db: Session,
    *,
    username: str,
    password: str,
    role: UserRole,
    store_id: int | None = None,
    distributor_id: int | None = None,
) -> User:
    username = (username or '').strip()
    if not username:
        raise RegistrationError('Username is required')
    if len(password or '') < MIN_PASSWORD_LENGTH:
        raise RegistrationError(f'Password must have at least {MIN_PASSWORD_LENGTH} characters')
    if get_user_by_username(db, username) is not None:
        raise RegistrationError('Username already exists')

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        store_id=store_id,
        distributor_id=distributor_id,
        active=True,
    )
    db.add(user)
    db.flush()
    logger.info('Registered %s user %s', role.value, username)
    return user


def register_supermarket(db: Session, *, username: str, password: str, store_id: int | None = None) -> User:
    """Create the first account of the installation.

    Only allowed while the users table is empty; the account belongs to the
    main store unless another store is given.
    """
    existing = db.execute(select(func.count(User.id))).scalar_one()
    if existing:
        raise PermissionDeniedError('Supermarket registration is closed')
    target_store = store_id if store_id is not None else settings.main_store_id
    get_store(db, target_store)
    return _create_user(
        db,
        username=username,
        password=password,
        role=UserRole.SUPERMARKET,
        store_id=target_store,
    )


def register_store_user(db: Session, *, username: str, password: str, store_id: int) -> User:
    if store_id == settings.main_store_id:
        raise RegistrationError('Users for the main store cannot be registered here')
    get_store(db, store_id)
    return _create_user(
        db,
        username=username,
        password=password,
        role=UserRole.SUPERMARKET,
        store_id=store_id,
    )


def register_distributor_user(db: Session, *, username: str, password: str, distributor_id: int) -> User:
    get_distributor(db, distributor_id)
    return _create_user(
        db,
        username=username,
        password=password,
        role=UserRole.DISTRIBUTOR,
        distributor_id=distributor_id,
    )


def authenticate(
    db: Session,
    *,
    username: str,
    password: str,
    ip: str | None,
    user_agent: str | None,
) -> User | None:
    user = get_user_by_username(db, username)
    if user is None:
        failure = 'UNKNOWN_USERNAME'
    elif not user.active:
        failure = 'INACTIVE_USER'
    else:
        valid, updated_hash = check_password(password, user.password_hash)
        failure = None if valid else 'BAD_PASSWORD'
        if valid and updated_hash:
            user.password_hash = updated_hash

    log_auth_event(
        db,
        attempted_username=username,
        success=failure is None,
        failure_reason=failure,
        user_id=user.id if user else None,
        ip=ip,
        user_agent=user_agent,
    )
    if failure:
        logger.warning('Login failed for %r: %s', username, failure)
        return None
    return user
