"""Query facade: classify user text, read the cache, scrape on miss."""

from apps.query.classifier import Intent, IntentKind, classify
from apps.query.semester import roc_year, semesters_for_date
from apps.query.service import QueryService

__all__ = [
    "Intent",
    "IntentKind",
    "QueryService",
    "classify",
    "roc_year",
    "semesters_for_date",
]
