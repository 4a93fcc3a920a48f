# =============================================================================
# 模块: apps/scraper/ntpu/__init__.py
# 功能: 校园旧系统爬虫适配器包入口
# 架构角色: 每类数据一个模块（学生、通讯录、课程、学程、贴图），
#           均以异步生成器产出 core.schemas 中的记录。
# =============================================================================

"""Scraper adapters for the NTPU campus systems.

Usage:
    from apps.scraper.ntpu import course

    async for c in course.scrape_courses_by_title(client, 113, 1, "微積分"):
        ...
"""

from apps.scraper.ntpu import contact, course, program, sticker, student

__all__ = [
    "contact",
    "course",
    "program",
    "sticker",
    "student",
]
