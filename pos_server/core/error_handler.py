"""
HTTP 错误响应
业务异常按 error_code 映射为状态码，失败响应体统一为
{"success": false, "error_code": ..., "message": ..., "details": {...}}
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .exceptions import BaseApplicationError

logger = logging.getLogger(__name__)

# 未列出的业务错误码按 400 处理
STATUS_BY_CODE = {
    "VALIDATION_ERROR": 400,
    "AUTHENTICATION_REQUIRED": 401,
    "INSUFFICIENT_PAYMENT": 402,
    "PERMISSION_DENIED": 403,
    "RESOURCE_NOT_FOUND": 404,
    "INVALID_STATE": 409,
    "CONFLICT": 409,
    "CONCURRENT_MODIFICATION": 409,
    "STORAGE_UNAVAILABLE": 503,
}


def status_for(error: BaseApplicationError) -> int:
    return STATUS_BY_CODE.get(error.error_code, 400)


def error_response(status_code: int, error_code: str, message: str,
                   details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={
        "success": False,
        "error_code": error_code,
        "message": message,
        "details": details or {},
    })


async def application_error_handler(request: Request, exc: BaseApplicationError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s 存储不可用: %s", request.method, request.url.path, exc.message)
    return error_response(status_code, exc.error_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, "HTTP_ERROR", str(exc.detail), {"status_code": exc.status_code})


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求体结构错误（缺字段、枚举值无效等），业务校验错误走 application_error_handler"""
    return error_response(
        422, "VALIDATION_ERROR", "请求参数格式不正确",
        {"validation_errors": jsonable_encoder(exc.errors())}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("未处理的异常 %s %s", request.method, request.url.path, exc_info=exc)
    return error_response(500, "INTERNAL_ERROR", "系统内部错误", {"error_type": type(exc).__name__})


def register_exception_handlers(app: FastAPI):
    """注册全部异常处理器"""
    app.add_exception_handler(BaseApplicationError, application_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)


def create_success_response(data: Any = None, message: str = "操作成功") -> Dict[str, Any]:
    """成功响应体，data 为空时省略"""
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    return body
