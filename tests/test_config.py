"""
tests.test_config
~~~~~~~~~~~~~~~~~

Settings 默认值与环境差异化行为测试。
"""
from __future__ import annotations

from app.core.config import Settings


class TestCorsSettings:
    """测试跨域配置。"""

    def test_prod_allows_any_origin_by_default(self) -> None:
        prod = Settings(ENVIRONMENT="prod", _env_file=None)

        assert prod.allow_cors_all_origins is False
        assert prod.CORS_ORIGINS == ["*"]

    def test_prod_origins_can_be_restricted(self) -> None:
        prod = Settings(ENVIRONMENT="prod", CORS_ORIGINS=["https://live.example.com"], _env_file=None)

        assert prod.CORS_ORIGINS == ["https://live.example.com"]

    def test_non_prod_allows_all(self) -> None:
        assert Settings(ENVIRONMENT="dev", _env_file=None).allow_cors_all_origins is True
        assert Settings(ENVIRONMENT="test", _env_file=None).allow_cors_all_origins is True
