# =============================================================================
# 模块: common/config_loader.py
# 功能: YAML 配置文件加载工具模块
# 架构角色: 作为配置基础设施层，为 settings.py 与日志初始化提供 YAML 读取能力。
#   支持两级配置合并机制：
#   - 项目默认配置：/config/defaults.yaml（随代码发布）
#   - 本地覆盖配置：/config/local.yaml（部署时可选，不入库）
#   本地配置覆盖默认配置（深度合并）。
#
# 设计决策:
#   - 使用模块级变量 _config_cache 缓存主配置，避免重复读取文件
#   - deep_merge 实现字典深度合并，支持嵌套配置结构（如 scraper.base_urls）
#   - 日志配置使用 Python 标准库 logging.config.dictConfig
# =============================================================================
"""YAML configuration loader for CampusCache.

Configuration precedence (highest to lowest):
1. Environment variables (runtime override, handled by settings.py)
2. .env file
3. /config/local.yaml (deployment overrides)
4. /config/defaults.yaml (shipped defaults)
5. Hardcoded Python defaults (fallback)
"""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# 项目根目录：从 common/ 目录向上一级
BASE_DIR = Path(__file__).resolve().parents[1]
# 全局配置文件目录
CONFIG_DIR = BASE_DIR / "config"

# 模块级配置缓存，None 表示尚未加载
_config_cache: Optional[Dict[str, Any]] = None


def load_yaml(file_path: Path) -> Dict[str, Any]:
    """Load a YAML file and return its contents as a dict.

    加载指定的 YAML 文件并返回解析后的字典。
    文件不存在时返回空字典，不抛出异常。

    Args:
        file_path: Path to the YAML file.

    Returns:
        Dictionary containing the YAML contents, or empty dict if file doesn't exist.
    """
    if not file_path.exists():
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        # yaml.safe_load 返回 None 时（空文件），用 or {} 兜底
        return yaml.safe_load(f) or {}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries. Override values take precedence.

    深度合并两个字典，override 中的值优先。
    嵌套字典递归合并；列表等非字典值直接替换（base_urls 候选列表整体覆盖）。

    示例:
        base = {"a": {"x": 1, "y": 2}, "b": 3}
        override = {"a": {"x": 10, "z": 30}}
        结果 = {"a": {"x": 10, "y": 2, "z": 30}, "b": 3}
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def get_config(config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """Load and cache the merged project config.

    加载 defaults.yaml 并与 local.yaml 深度合并后缓存。
    传入 config_dir 时绕过缓存（测试场景）。

    Args:
        config_dir: Alternative configuration directory.

    Returns:
        Merged configuration dictionary.
    """
    global _config_cache
    if config_dir is not None:
        return deep_merge(
            load_yaml(config_dir / "defaults.yaml"),
            load_yaml(config_dir / "local.yaml"),
        )
    if _config_cache is None:
        _config_cache = deep_merge(
            load_yaml(CONFIG_DIR / "defaults.yaml"),
            load_yaml(CONFIG_DIR / "local.yaml"),
        )
    return _config_cache


def get_section(name: str) -> Dict[str, Any]:
    """Return one top-level section of the merged config (empty if absent)."""
    return get_config().get(name) or {}


def setup_logging_from_yaml(
    config_path: Optional[Path] = None,
    log_level_override: Optional[str] = None,
    log_file_override: Optional[Path] = None,
) -> None:
    """Configure logging from YAML with optional overrides.

    从 YAML 配置文件初始化 Python 日志系统。
    支持运行时覆盖日志级别和日志文件路径。
    如果 YAML 配置文件不存在，回退到 basicConfig 基础配置。

    Args:
        config_path: Path to logging YAML config. Defaults to /config/logging.yaml.
        log_level_override: Override the root logger level.
        log_file_override: Override the file handler's filename.

    副作用:
        - 调用 logging.config.dictConfig 配置全局日志系统
        - 自动创建日志文件所在目录
    """
    config_path = config_path or CONFIG_DIR / "logging.yaml"
    config = load_yaml(config_path)

    if not config:
        logging.basicConfig(
            level=(log_level_override or "INFO").upper(),
            format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        )
        return

    if log_level_override:
        config.setdefault("root", {})["level"] = log_level_override.upper()

    if log_file_override:
        if "handlers" in config and "file" in config["handlers"]:
            config["handlers"]["file"]["filename"] = str(log_file_override)

    # 文件类 handler：相对路径基于项目根目录解析，并确保目录存在
    for handler in config.get("handlers", {}).values():
        if "filename" in handler:
            filename = Path(handler["filename"])
            if not filename.is_absolute():
                filename = BASE_DIR / filename
            filename.parent.mkdir(parents=True, exist_ok=True)
            handler["filename"] = str(filename)

    logging.config.dictConfig(config)


def clear_config_cache() -> None:
    """Clear the configuration cache. Useful for testing."""
    global _config_cache
    _config_cache = None
