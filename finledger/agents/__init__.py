"""Advisory agents with rule-based fallbacks."""

from finledger.agents.ai_agents import (
    CategorizationAgent,
    ForecastAgent,
    extract_json,
)
from finledger.agents.rules import (
    CATEGORY_RULES,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    build_recommendations,
    categorize_description,
    compute_health_score,
    fallback_forecast,
    health_status,
)

__all__ = [
    "CategorizationAgent",
    "ForecastAgent",
    "extract_json",
    "CATEGORY_RULES",
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "build_recommendations",
    "categorize_description",
    "compute_health_score",
    "fallback_forecast",
    "health_status",
]
