"""
发票编号配置模型
"""

from enum import Enum
from typing import Optional

from pydantic import Field, StrictInt

from .base import FrozenModel


class ResetPolicy(str, Enum):
    """编号计数器重置策略"""
    NEVER = "never"
    YEARLY = "yearly"
    MONTHLY = "monthly"
    DAILY = "daily"


class InvoiceNumberingConfig(FrozenModel):
    """租户发票编号配置"""
    enabled: bool = True
    prefix: str = ""
    series: str = ""
    suffix: str = ""
    padding: Optional[StrictInt] = Field(None, description="序号补零位数，缺省取系统默认值，最小为 1")
    reset_policy: ResetPolicy = ResetPolicy.NEVER
