"""
安全相关功能
签发和校验 JWT，提供当前调用方依赖和角色校验

身份本身由外部认证系统管理，token 中只携带 sub（调用方ID）和 role。
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config.settings import settings
from ..models.user import Caller, Role
from .exceptions import AuthenticationError, PermissionDeniedError


class SecurityManager:
    """安全管理器"""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None,
                 expire_hours: Optional[int] = None):
        self.secret_key = secret_key or settings.jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expire_hours = expire_hours or settings.jwt_expire_hours

    def create_token(self, user_id: str, role: Role,
                     additional_claims: Optional[Dict[str, Any]] = None) -> str:
        """创建JWT token"""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "role": Role(role).value,
            "iat": now,
            "exp": now + timedelta(hours=self.expire_hours),
        }
        if additional_claims:
            payload.update(additional_claims)
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token: str) -> Dict[str, Any]:
        """解码JWT token"""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token 已过期") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError(f"无效的 Token: {e}") from e

    def get_caller(self, token: str) -> Caller:
        """从 token 中解析调用方"""
        payload = self.decode_token(token)
        user_id = payload.get("sub")
        role = payload.get("role")
        if not user_id or not role:
            raise AuthenticationError("Token 缺少 sub 或 role")
        try:
            return Caller(user_id=user_id, role=Role(role))
        except ValueError as e:
            raise AuthenticationError(f"未知角色: {role}") from e


# 全局安全管理器实例
security_manager = SecurityManager()

_bearer = HTTPBearer(auto_error=False)


async def get_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer)
) -> Caller:
    """从 Authorization header 中解析当前调用方"""
    if credentials is None:
        raise AuthenticationError("缺少认证信息")
    return security_manager.get_caller(credentials.credentials)


def require_role(caller: Caller, *roles: Role, action: str = ""):
    """
    校验调用方角色

    Raises:
        PermissionDeniedError: 角色不在允许范围内
    """
    if caller.role not in roles:
        raise PermissionDeniedError(
            f"角色 {caller.role.value} 无权执行该操作",
            details={
                "action": action,
                "role": caller.role.value,
                "allowed_roles": [r.value for r in roles],
            }
        )
