from typing import Any, Dict, Optional
import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger
from src.config.settings import settings
from src.db.models import User
from src.db.session import get_db

AuthPayload = Dict[str, Any]

def _extract_token(request: Request) -> Optional[str]:
    """从 Authorization 头或 token cookie 中取出令牌"""
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get("token") or None

def verify_token(token: str) -> Optional[AuthPayload]:
    """校验JWT，失败返回None"""
    options = {"verify_aud": bool(settings.auth.AUTH_AUDIENCE)}
    try:
        return jwt.decode(
            token,
            settings.auth.AUTH_SECRET,
            algorithms=[settings.auth.AUTH_ALGORITHM],
            audience=settings.auth.AUTH_AUDIENCE or None,
            options=options,
        )
    except jwt.PyJWTError as e:
        logger.warning(f"令牌校验失败: {str(e)}")
        return None

async def verify_auth(request: Request) -> Optional[AuthPayload]:
    """校验请求携带的身份令牌"""
    token = _extract_token(request)
    if not token:
        return None
    return verify_token(token)

async def require_auth(request: Request) -> AuthPayload:
    """要求请求已认证的依赖"""
    payload = await verify_auth(request)
    if not payload:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return payload

async def resolve_user_id(payload: AuthPayload, db: AsyncSession) -> Optional[str]:
    """解析调用者的内部用户ID

    优先使用令牌中的 userId，否则按认证服务的 sub 查找用户。
    """
    user_id = payload.get("userId")
    if isinstance(user_id, str) and user_id:
        return user_id

    auth_id = payload.get("sub")
    if not auth_id:
        return None
    result = await db.execute(select(User.id).where(User.auth_id == auth_id))
    return result.scalar_one_or_none()

async def get_current_user_id(
    payload: AuthPayload = Depends(require_auth),
    db: AsyncSession = Depends(get_db)
) -> str:
    """获取当前用户ID的依赖"""
    user_id = await resolve_user_id(payload, db)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id
