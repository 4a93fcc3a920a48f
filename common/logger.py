# =============================================================================
# 模块: common/logger.py
# 功能: 日志系统初始化的便捷封装
# 架构角色: 作为日志配置的入口，封装 config_loader 中的 YAML 日志配置逻辑，
#   供 main.py（预热命令行）在启动时调用。
#
# 设计决策:
#   - 采用薄封装（thin wrapper）模式，保持接口简洁
#   - 日志配置来自 /config/logging.yaml，支持文件轮转与第三方库降噪
# =============================================================================
"""Logging setup for CampusCache.

Uses YAML-based configuration from /config/logging.yaml with optional
runtime overrides for log level and log file.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from common.config_loader import setup_logging_from_yaml


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Setup logging using YAML config with optional overrides.

    使用 YAML 配置文件初始化日志系统，可选覆盖日志级别和日志文件路径。

    Args:
        log_level: Override the root logger level (default: INFO).
            通常来自 settings.log_level（环境变量 LOG_LEVEL）。
        log_file: Override the file handler's filename (optional).
    """
    setup_logging_from_yaml(
        log_level_override=log_level,
        log_file_override=log_file,
    )
