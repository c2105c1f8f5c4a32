"""
订单定价服务
"""

__version__ = "1.0.0"
