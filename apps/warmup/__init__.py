"""Cache warmup pipeline."""

from apps.warmup.runner import MODULES, WarmupRunner, WarmupSummary, parse_modules

__all__ = [
    "MODULES",
    "WarmupRunner",
    "WarmupSummary",
    "parse_modules",
]
