"""
基础数据模型
定义通用的模型基类和金额换算
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Union

from pydantic import BaseModel


class BaseEntity(BaseModel):
    """基础实体模型"""

    model_config = {"from_attributes": True}


class DocumentEntity(BaseEntity):
    """保存在文档集合中的实体，携带文档 id 和版本号"""
    id: str = ""
    version: int = 0

    @classmethod
    def from_document(cls, doc):
        """从存储文档构建实体"""
        return cls.model_validate({**doc.data, "id": doc.id, "version": doc.version})

    def to_document(self) -> Dict[str, Any]:
        """转换为可写入存储的字典（不含 id 和版本号）"""
        return self.model_dump(mode="json", exclude={"id", "version"})


def cents_to_decimal(cents: int) -> Decimal:
    """分 -> 元"""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


def decimal_to_cents(amount: Union[Decimal, str, int, float]) -> int:
    """元 -> 分，四舍五入到分"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
