"""
调用方身份模型
身份由外部认证系统提供，这里只保留 id 和角色
"""

from enum import Enum

from pydantic import Field

from .base import BaseEntity


class Role(str, Enum):
    """角色枚举"""
    ADMIN = "admin"        # 管理员
    CASHIER = "cashier"    # 收银员
    KITCHEN = "kitchen"    # 后厨
    CUSTOMER = "customer"  # 顾客


STAFF_ROLES = (Role.ADMIN, Role.CASHIER, Role.KITCHEN)
REGISTER_ROLES = (Role.ADMIN, Role.CASHIER)


class Caller(BaseEntity):
    """当前调用方"""
    user_id: str = Field(..., description="调用方ID")
    role: Role = Field(..., description="角色")

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN
