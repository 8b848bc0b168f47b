"""
自定义异常类
提供更精确的错误处理和异常信息

每个异常都带有机器可读的 error_code 和 details，
details 中指明失败的字段或不变量，便于前端给出具体提示。
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    default_code = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BaseApplicationError):
    """输入数据不合法：负价格、空商品列表、非正数量等"""
    default_code = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """资源不存在"""
    default_code = "RESOURCE_NOT_FOUND"


class InvalidStateError(BaseApplicationError):
    """非法状态转换，或操作已冻结（已支付）的订单"""
    default_code = "INVALID_STATE"


class ConflictError(BaseApplicationError):
    """共享状态冲突：桌台重复占用、重复开班等"""
    default_code = "CONFLICT"


class ConcurrencyError(ConflictError):
    """并发控制错误（文档版本已被其他终端修改）"""
    default_code = "CONCURRENT_MODIFICATION"


class InsufficientPaymentError(BaseApplicationError):
    """现金实收金额小于订单总额"""
    default_code = "INSUFFICIENT_PAYMENT"


class AuthenticationError(BaseApplicationError):
    """认证相关异常"""
    default_code = "AUTHENTICATION_REQUIRED"


class PermissionDeniedError(BaseApplicationError):
    """权限拒绝错误"""
    default_code = "PERMISSION_DENIED"


class StorageUnavailableError(BaseApplicationError):
    """存储层不可用或写入失败，由调用方决定是否重试"""
    default_code = "STORAGE_UNAVAILABLE"
