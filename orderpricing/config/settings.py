from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 数据库配置
    database_url: str = "duckdb://./data/orderpricing.duckdb"

    # API配置
    api_title: str = "Order Pricing API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"

    # 定价配置
    default_currency: str = "USD"

    # 发票编号配置
    invoice_default_padding: int = 8
    invoice_separator: str = "-"

    # 事务冲突重试
    transaction_max_attempts: int = 8
    transaction_retry_backoff_ms: int = 5

    # 开发模式
    debug: bool = False

    model_config = SettingsConfigDict(
        env_prefix="ORDERPRICING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# 全局设置实例
settings = Settings()
