from fastapi import HTTPException, Request, status

from ordering_portal.config import settings
from ordering_portal.services.order_status_service import STATUS_POLICY_COERCE, STATUS_POLICY_REJECT, OrderStateError
from ordering_portal.services.user_service import PermissionDeniedError


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_status_policy() -> str:
    policy = settings.order_status_policy.strip().lower()
    return STATUS_POLICY_COERCE if policy == STATUS_POLICY_COERCE else STATUS_POLICY_REJECT


def service_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, OrderStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if str(exc).lower().endswith('not found'):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
