"""
基础数据模型
定义通用的模型基类和常用字段
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Python 中使用蛇形命名，持久化文档与接口中使用驼峰命名"""

    model_config = {"populate_by_name": True, "alias_generator": to_camel}

    def to_document(self) -> dict:
        """转换为可直接写入文档存储的 JSON 字典"""
        return self.model_dump(mode="json", by_alias=True)


class FrozenModel(CamelModel):
    """不可变模型"""

    model_config = {"populate_by_name": True, "alias_generator": to_camel, "frozen": True}


class OrderType(str, Enum):
    """订单类型枚举"""
    DINE_IN = "dine_in"       # 堂食
    DELIVERY = "delivery"     # 外送
    PICKUP = "pickup"         # 自取


_ORDER_TYPE_ALIASES = {
    OrderType.DINE_IN: ("dine-in", "dine_in", "dinein", "mesa", "restaurant"),
    OrderType.DELIVERY: ("delivery", "envio", "entrega"),
    OrderType.PICKUP: ("pickup", "takeaway", "para_llevar", "para-llevar"),
}


def normalize_order_type(value: Any) -> Optional[OrderType]:
    """把界面和历史数据中的各种写法归一为 OrderType，无法识别时返回 None"""
    if isinstance(value, OrderType):
        return value
    text = str(value or "").strip().lower()
    for order_type, aliases in _ORDER_TYPE_ALIASES.items():
        if text in aliases:
            return order_type
    return None
