import os
from typing import Optional

from .settings import Settings, settings
from .environments.development import DevelopmentSettings


def load_settings(env: Optional[str] = None) -> Settings:
    """按 ORDERPRICING_ENV 选择配置类"""
    env_name = (env or os.getenv("ORDERPRICING_ENV", "production")).strip().lower()
    if env_name == "development":
        return DevelopmentSettings()
    return Settings()


__all__ = ["Settings", "DevelopmentSettings", "settings", "load_settings"]
