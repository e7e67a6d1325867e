from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt


def create_access_token(
    data: Dict[str, Any],
    secret: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None
) -> str:
    """Создание JWT токена доступа"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=15)  # По умолчанию 15 минут

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret, algorithm=algorithm)


def verify_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[Dict[str, Any]]:
    """Проверка JWT токена и извлечение данных"""
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        return None


def is_superadmin(payload: Dict[str, Any]) -> bool:
    """Привилегированный оператор: claim superadmin или роль superadmin"""
    return payload.get("superadmin") is True or payload.get("role") == "superadmin"
