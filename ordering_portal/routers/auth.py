from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ordering_portal.auth import Principal, get_current_principal, require_main_store
from ordering_portal.config import settings
from ordering_portal.db import get_db
from ordering_portal.dependencies import get_client_ip, service_error
from ordering_portal.models import User
from ordering_portal.schemas import (
    DistributorUserRegisterIn,
    LoginIn,
    StoreUserRegisterIn,
    SupermarketRegisterIn,
)
from ordering_portal.security.sessions import create_web_session, revoke_web_session
from ordering_portal.serializers import user_to_dict
from ordering_portal.services.audit_service import log_audit
from ordering_portal.services.user_service import (
    authenticate,
    register_distributor_user,
    register_store_user,
    register_supermarket,
)

router = APIRouter(prefix='/api', tags=['auth'])


def _session_response(user: User, token: str, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    response = JSONResponse(user_to_dict(user), status_code=status_code)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/login')
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')
    username = payload.username.strip()

    user = authenticate(db, username=username, password=payload.password, ip=ip, user_agent=user_agent)
    if user is None:
        db.commit()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid username or password')

    token = create_web_session(db, user.id, ip=ip, user_agent=user_agent)
    log_audit(db, actor_user_id=user.id, action='AUTH_LOGIN', ip=ip, metadata={'username': username})
    db.commit()
    return _session_response(user, token)


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_user_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
    )
    db.commit()

    response = JSONResponse({'ok': True})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/user')
def current_user(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    user = db.get(User, principal.id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    return user_to_dict(user)


@router.post('/register/supermarket', status_code=status.HTTP_201_CREATED)
def register_supermarket_user(payload: SupermarketRegisterIn, request: Request, db: Session = Depends(get_db)):
    ip = get_client_ip(request)
    try:
        user = register_supermarket(
            db,
            username=payload.username,
            password=payload.password,
            store_id=payload.store_id,
        )
    except ValueError as exc:
        raise service_error(exc) from exc

    # The first account is signed in right away.
    token = create_web_session(db, user.id, ip=ip, user_agent=request.headers.get('user-agent'))
    log_audit(db, actor_user_id=user.id, action='USER_REGISTER', ip=ip, metadata={'role': 'supermarket'})
    db.commit()
    return _session_response(user, token, status_code=status.HTTP_201_CREATED)


@router.post('/register/store', status_code=status.HTTP_201_CREATED)
def register_store(
    payload: StoreUserRegisterIn,
    request: Request,
    principal: Principal = Depends(require_main_store),
    db: Session = Depends(get_db),
):
    try:
        user = register_store_user(db, username=payload.username, password=payload.password, store_id=payload.store_id)
    except ValueError as exc:
        raise service_error(exc) from exc
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_REGISTER',
        ip=get_client_ip(request),
        metadata={'role': 'supermarket', 'store_id': payload.store_id, 'username': user.username},
    )
    db.commit()
    return user_to_dict(user)


@router.post('/register/distributor', status_code=status.HTTP_201_CREATED)
def register_distributor(payload: DistributorUserRegisterIn, request: Request, db: Session = Depends(get_db)):
    try:
        user = register_distributor_user(
            db,
            username=payload.username,
            password=payload.password,
            distributor_id=payload.distributor_id,
        )
    except ValueError as exc:
        raise service_error(exc) from exc
    log_audit(
        db,
        actor_user_id=user.id,
        action='USER_REGISTER',
        ip=get_client_ip(request),
        metadata={'role': 'distributor', 'distributor_id': payload.distributor_id},
    )
    db.commit()
    return user_to_dict(user)
