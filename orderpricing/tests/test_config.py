"""
配置加载测试
"""

from orderpricing.config import DevelopmentSettings, Settings, load_settings
from orderpricing.core.database import DatabaseManager


class TestLoadSettings:
    """按环境选择配置"""

    def test_development_env(self, monkeypatch):
        monkeypatch.setenv("ORDERPRICING_ENV", "development")
        loaded = load_settings()
        assert isinstance(loaded, DevelopmentSettings)
        assert loaded.debug is True

    def test_env_prefix_overrides(self, monkeypatch):
        monkeypatch.setenv("ORDERPRICING_DEFAULT_CURRENCY", "MXN")
        monkeypatch.setenv("ORDERPRICING_INVOICE_DEFAULT_PADDING", "5")
        loaded = load_settings("production")
        assert type(loaded) is Settings
        assert loaded.default_currency == "MXN"
        assert loaded.invoice_default_padding == 5

    def test_database_path_from_url(self):
        db = DatabaseManager(app_settings=Settings(database_url="duckdb://:memory:"))
        assert db.db_path == ":memory:"
        db = DatabaseManager(app_settings=Settings(database_url="duckdb://./data/x.duckdb"))
        assert db.db_path == "./data/x.duckdb"
