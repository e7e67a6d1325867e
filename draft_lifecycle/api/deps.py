from typing import Any, Dict

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from draft_lifecycle.container import Container
from draft_lifecycle.core.security import is_superadmin, verify_token
from draft_lifecycle.domains.drafts import DraftService

security = HTTPBearer()


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_draft_service(container: Container = Depends(get_container)) -> DraftService:
    return container.drafts


async def get_token_payload(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    container: Container = Depends(get_container)
) -> Dict[str, Any]:
    """Зависимость для проверки bearer-токена"""
    payload = verify_token(
        credentials.credentials,
        container.settings.jwt_secret,
        container.settings.jwt_algorithm
    )
    if not payload or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


async def get_current_owner(payload: Dict[str, Any] = Depends(get_token_payload)) -> str:
    """Владелец черновиков: субъект токена"""
    return str(payload["sub"])


async def require_superadmin(payload: Dict[str, Any] = Depends(get_token_payload)) -> Dict[str, Any]:
    """Зависимость для привилегированных операций"""
    if not is_superadmin(payload):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only superadmins can perform this operation"
        )
    return payload
