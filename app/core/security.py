from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from fastapi import HTTPException, status
from starlette.requests import Request
from app.core.config import settings

DEFAULT_ROLE = "user"


@dataclass(frozen=True)
class CallerIdentity:
    """已认证的调用方（由外部认证服务签发的 token 解析而来）"""
    user_id: str
    role: str = DEFAULT_ROLE


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """创建 JWT Token（供联调工具与测试使用）"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM
    )
    return encoded_jwt


def _decode_caller(request: Request) -> Optional[CallerIdentity]:
    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ", 1)[1]
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    role = payload.get("role") or DEFAULT_ROLE
    return CallerIdentity(user_id=str(user_id), role=str(role))


async def get_current_caller(request: Request) -> CallerIdentity:
    """获取当前认证调用方"""
    caller = _decode_caller(request)
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="无效的认证凭证",
        )
    return caller
