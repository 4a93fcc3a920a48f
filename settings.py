# =============================================================================
# 模块: settings.py
# 功能: CampusCache 的全局应用配置模块
# 架构角色: 作为整个应用的配置中枢，提供统一的配置管理。
#   采用分层配置优先级机制，从高到低依次为：
#   1. 环境变量（运行时覆盖，适用于容器化部署）
#   2. .env 文件
#   3. config/local.yaml + config/defaults.yaml（由 config_loader 深度合并）
#   4. Python 代码中的硬编码默认值（兜底方案）
#
# 设计决策:
#   - 使用 pydantic-settings 的 BaseSettings 实现类型安全的配置
#   - YAML 文件在模块加载时一次性读取并缓存到模块级变量中
#   - validation_alias 用于将大写的环境变量名映射到小写的 Python 属性名
#   - 上游候选 URL 在此处定型为不可变映射，构造 HTTP 客户端时注入
# =============================================================================
"""Global application settings for CampusCache.

Configuration precedence (highest to lowest):
1. Environment variables (runtime override)
2. .env file
3. config/local.yaml, config/defaults.yaml
4. Hardcoded Python defaults (fallback)
"""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.config_loader import get_section

# 项目根目录（settings.py 所在目录）
BASE_DIR = Path(__file__).resolve().parent

# 模块加载时一次性读取 YAML 配置并缓存
_app_config = get_section("app")
_logging_config = get_section("logging")
_cache_config = get_section("cache")
_scraper_config = get_section("scraper")
_warmup_config = get_section("warmup")

# 上游站点默认候选 URL（YAML 缺失时的兜底）
DEFAULT_BASE_URLS: Dict[str, List[str]] = {
    "lms": [
        "http://120.126.197.52",
        "https://120.126.197.52",
        "https://lms.ntpu.edu.tw",
    ],
    "sea": [
        "http://120.126.197.7",
        "https://120.126.197.7",
        "https://sea.cc.ntpu.edu.tw",
    ],
}

DEFAULT_DEPARTMENTS: List[str] = [
    "71", "712", "714", "716", "72", "73", "742", "744",
    "75", "76", "77", "78", "79", "80", "81", "82", "83", "84", "85", "86", "87",
]


def _resolve_path(value: str, base: Path) -> Path:
    """Resolve a possibly relative path against ``base``."""
    path = Path(value)
    if not path.is_absolute():
        return base / path
    return path


# =============================================================================
# Settings 类: 全局配置类
# 设计决策:
#   - default 值优先从 YAML 缓存中获取，找不到时使用硬编码默认值
#   - 属性（@property）用于派生计算字段（如数据库 URL、模块列表）
# =============================================================================
class Settings(BaseSettings):
    """Global application settings."""

    # ======================== 应用基本配置 ========================
    app_name: str = Field(
        default=_app_config.get("name", "CampusCache"),
        validation_alias="APP_NAME",
    )
    data_dir: Path = Field(
        default=_resolve_path(_app_config.get("data_dir", "./data"), BASE_DIR),
        validation_alias="DATA_DIR",
    )
    # SQLite 文件路径；为空时使用 data_dir 下的 sqlite_path 配置
    sqlite_path: Optional[Path] = Field(
        default=None,
        validation_alias="SQLITE_PATH",
    )
    log_level: str = Field(
        default=_logging_config.get("level", "INFO"),
        validation_alias="LOG_LEVEL",
    )

    # ======================== 缓存配置 ========================
    # 记录新鲜度窗口（秒）：now - cached_at <= ttl 视为新鲜
    cache_ttl: int = Field(
        default=_cache_config.get("ttl", 7 * 24 * 3600),
        validation_alias="CACHE_TTL",
    )
    historical_cache_ttl: int = Field(
        default=_cache_config.get("historical_ttl", 7 * 24 * 3600),
        validation_alias="HISTORICAL_CACHE_TTL",
    )

    # ======================== 爬虫配置 ========================
    scraper_timeout: float = Field(
        default=_scraper_config.get("timeout", 60),
        validation_alias="SCRAPER_TIMEOUT",
    )
    scraper_max_retries: int = Field(
        default=_scraper_config.get("max_retries", 10),
        validation_alias="SCRAPER_MAX_RETRIES",
    )
    scraper_initial_delay: float = Field(
        default=_scraper_config.get("initial_delay", 1.0),
        validation_alias="SCRAPER_INITIAL_DELAY",
    )
    scraper_base_urls: Dict[str, List[str]] = Field(
        default=_scraper_config.get("base_urls") or DEFAULT_BASE_URLS,
        validation_alias="SCRAPER_BASE_URLS",
    )

    # ======================== 预热配置 ========================
    scraper_workers: int = Field(
        default=_warmup_config.get("workers", 3),
        validation_alias="SCRAPER_WORKERS",
    )
    warmup_modules: str = Field(
        default=_warmup_config.get("modules", "students,contacts,courses,stickers,programs"),
        validation_alias="WARMUP_MODULES",
    )
    # 整次预热超时（秒）
    warmup_timeout: float = Field(
        default=_warmup_config.get("timeout", 1800),
        validation_alias="WARMUP_TIMEOUT",
    )
    student_year_from: int = Field(
        default=_warmup_config.get("student_year_from", 112),
        validation_alias="WARMUP_STUDENT_YEAR_FROM",
    )
    student_year_to: int = Field(
        default=_warmup_config.get("student_year_to", 101),
        validation_alias="WARMUP_STUDENT_YEAR_TO",
    )
    departments: List[str] = Field(
        default=_warmup_config.get("departments") or DEFAULT_DEPARTMENTS,
        validation_alias="WARMUP_DEPARTMENTS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("scraper_workers")
    @classmethod
    def workers_must_be_positive(cls, v: int) -> int:
        """Reject worker pools smaller than one."""
        if v < 1:
            raise ValueError("SCRAPER_WORKERS must be >= 1")
        return v

    @property
    def database_path(self) -> Path:
        """Return the absolute path of the SQLite cache file.

        SQLITE_PATH 环境变量优先；否则使用 YAML 中的 app.sqlite_path（相对 data_dir）。
        """
        if self.sqlite_path is not None:
            return _resolve_path(str(self.sqlite_path), BASE_DIR)
        return _resolve_path(_app_config.get("sqlite_path", "cache.db"), self.data_dir)

    @property
    def base_urls(self) -> Mapping[str, Tuple[str, ...]]:
        """Return the failover candidates as an immutable domain -> URLs mapping."""
        return MappingProxyType(
            {domain: tuple(urls) for domain, urls in self.scraper_base_urls.items()}
        )


# 创建全局配置单例
# 整个应用通过 from settings import settings 引用此实例
settings = Settings()
