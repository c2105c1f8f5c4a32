"""
测试配置文件
提供测试所需的fixtures和配置
"""

import pytest
from fastapi.testclient import TestClient

from orderpricing.app import create_app
from orderpricing.config.settings import Settings
from orderpricing.core.database import DatabaseManager
from orderpricing.services.promotion_service import PromotionRepository

from factories import TENANT, make_promotion


@pytest.fixture
def test_settings():
    """测试配置（内存数据库）"""
    return Settings(
        database_url="duckdb://:memory:",
        api_title="Order Pricing API (Test)",
        api_version="1.0.0-test",
        transaction_max_attempts=50,
        transaction_retry_backoff_ms=2,
    )


@pytest.fixture
def test_db(test_settings):
    """测试数据库"""
    db_manager = DatabaseManager(app_settings=test_settings)
    db_manager.init_database()
    yield db_manager
    db_manager.close()


@pytest.fixture
def file_db(test_settings, tmp_path):
    """文件数据库（并发测试使用）"""
    db_manager = DatabaseManager(str(tmp_path / "orders.duckdb"), app_settings=test_settings)
    db_manager.init_database()
    yield db_manager
    db_manager.close()


@pytest.fixture
def app_instance(test_settings, test_db):
    """测试应用"""
    return create_app(test_settings, test_db)


@pytest.fixture
def client(app_instance):
    """测试客户端"""
    return TestClient(app_instance)


@pytest.fixture
def sample_promotion(test_db):
    """已保存的示例促销"""
    return PromotionRepository(test_db).save(TENANT, make_promotion())
