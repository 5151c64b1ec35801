from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status

from ordering_portal.config import settings


class Role(str, Enum):
    SUPERMARKET = "supermarket"
    DISTRIBUTOR = "distributor"


@dataclass
class Principal:
    id: int
    username: str
    role: Role
    store_id: int | None
    distributor_id: int | None
    active: bool

    @property
    def is_main_store(self) -> bool:
        return self.role == Role.SUPERMARKET and self.store_id == settings.main_store_id


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only supermarket users can perform this action",
            )
        return principal

    return _dep


def require_main_store(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_main_store:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the main store can perform this action",
        )
    return principal


def order_scope(principal: Principal) -> dict:
    """Filters restricting which orders a principal may list."""
    if principal.role == Role.DISTRIBUTOR:
        return {"distributor_id": principal.distributor_id if principal.distributor_id is not None else -1}
    if principal.is_main_store or principal.store_id is None:
        return {}
    return {"store_id": principal.store_id}


def assert_order_scope(principal: Principal, *, store_id: int, distributor_id: int) -> None:
    scope = order_scope(principal)
    if "store_id" in scope and scope["store_id"] != store_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    if "distributor_id" in scope and scope["distributor_id"] != distributor_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
