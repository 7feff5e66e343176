"""
AI Advisory Agents

DESIGN DECISION: The model only ADVISES. Neither agent writes to the
ledger; a categorization is a suggestion the user may override, and a
forecast is read-only commentary over metrics we computed ourselves.

CRITICAL BOUNDARIES:

1. CATEGORIZATION AGENT:
   - CAN: Suggest a type and category for a free-text description
   - CANNOT: Invent categories outside the known lists
   - CANNOT: Block a transaction from being submitted

2. FORECAST AGENT:
   - CAN: Summarize metrics, project trends, recommend actions
   - CANNOT: Change any number it was given

Every failure (missing API key, upstream error, unparsable or invalid
answer) falls back to the local rules in `finledger.agents.rules`.
Callers always get an answer with the same shape; the `fallback` flag
says where it came from.
"""

import json
from typing import Any, Optional

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from finledger.agents.rules import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    categorize_description,
    categories_for,
    fallback_forecast,
)
from finledger.audit import AuditLogger
from finledger.config import GeminiSettings, LedgerSettings
from finledger.models.insights import (
    CategorySuggestion,
    FinancialForecast,
    FinancialMetrics,
    Recommendation,
    RecommendationPriority,
)
from finledger.models.ledger import TransactionType


logger = structlog.get_logger("finledger.agents")


def _build_model(settings: Optional[GeminiSettings]):
    """
    Configure Gemini and return a model, or None when not configured.

    Without GEMINI_API_KEY the agents run on local rules only.
    """
    if settings is None:
        try:
            settings = GeminiSettings()
        except ValidationError:
            logger.warning("gemini_not_configured")
            return None

    genai.configure(api_key=settings.api_key)
    return genai.GenerativeModel(
        model_name=settings.model_name,
        generation_config={
            "temperature": settings.temperature,
            "max_output_tokens": settings.max_tokens,
        }
    )


def extract_json(text: str) -> dict[str, Any]:
    """
    Pull the first {...} object out of a model answer.

    Raises ValueError when there is none.
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ValueError("No JSON object in model response")
    data = json.loads(text[start:end])
    if not isinstance(data, dict):
        raise ValueError("Model response is not a JSON object")
    return data


class _AdvisoryAgent:
    """Shared model plumbing for both agents."""

    name = "advisory"

    def __init__(
        self,
        model: Optional[Any] = None,
        gemini_settings: Optional[GeminiSettings] = None,
        ledger_settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            model: Anything with `generate_content_async(prompt)`.
                   Built from GeminiSettings when omitted.
            audit_logger: Receives an event whenever rules answer instead.
        """
        self._model = model if model is not None else _build_model(gemini_settings)
        self._ledger_settings = ledger_settings or LedgerSettings()
        self._audit_logger = audit_logger

    @property
    def has_model(self) -> bool:
        return self._model is not None

    async def _ask(self, prompt: str) -> dict[str, Any]:
        try:
            response = await self._model.generate_content_async(prompt)
        except Exception as e:
            logger.error("gemini_request_failed", agent=self.name, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_external_service_error(
                    service="gemini",
                    error_message=str(e),
                )
            raise
        return extract_json(response.text.strip())

    async def _record_fallback(self, reason: str) -> None:
        logger.warning("advisory_fallback", agent=self.name, reason=reason)
        if self._audit_logger:
            await self._audit_logger.log_advisory_fallback(
                agent=self.name,
                reason=reason,
            )


# =============================================================================
# CATEGORIZATION
# =============================================================================

class CategorizationAgent(_AdvisoryAgent):
    """
    Suggests a type and category for a transaction description.

    The model must pick from the known category lists; anything else,
    or a confidence under `categorization_min_confidence`, is discarded
    in favour of the keyword rules.
    """

    name = "categorization"

    AI_CONFIDENCE = 0.85

    def _build_prompt(self, text: str) -> str:
        return f"""You are categorizing a transaction for a personal finance app.

Description: "{text}"

Income categories: {', '.join(INCOME_CATEGORIES)}
Expense categories: {', '.join(EXPENSE_CATEGORIES)}

Respond with ONLY a JSON object in this exact format:
{{"type": "income or expense", "category": "category_name", "confidence": 0.85}}

Be conservative - if unsure, use "expense" and "Other"."""

    def _parse_suggestion(self, data: dict[str, Any]) -> CategorySuggestion:
        transaction_type = TransactionType(str(data.get("type", "")).lower())

        wanted = str(data.get("category", "")).strip().lower()
        matches = [c for c in categories_for(transaction_type) if c.lower() == wanted]
        if not matches:
            raise ValueError(f"Unknown category '{data.get('category')}'")

        return CategorySuggestion(
            type=transaction_type,
            category=matches[0],
            confidence=float(data.get("confidence", self.AI_CONFIDENCE)),
            fallback=False,
        )

    async def categorize(self, text: str) -> CategorySuggestion:
        """
        Suggest a category for `text`.

        Never raises: on any problem the rule-based suggestion is returned.
        """
        if not text or not text.strip():
            return categorize_description(text)

        if not self.has_model:
            await self._record_fallback("model_not_configured")
            return categorize_description(text)

        try:
            data = await self._ask(self._build_prompt(text))
            suggestion = self._parse_suggestion(data)
        except Exception as e:
            await self._record_fallback(f"{type(e).__name__}: {e}")
            return categorize_description(text)

        if suggestion.confidence < self._ledger_settings.categorization_min_confidence:
            await self._record_fallback(f"low_confidence: {suggestion.confidence:.2f}")
            return categorize_description(text)

        return suggestion


# =============================================================================
# FORECAST
# =============================================================================

class ForecastAgent(_AdvisoryAgent):
    """Financial health assessment over precomputed metrics."""

    name = "forecast"

    def _build_prompt(self, metrics: FinancialMetrics) -> str:
        return f"""You are a financial advisor. Assess this person's finances.

Monthly income: {metrics.monthly_income:.2f}
Monthly expenses: {metrics.monthly_expenses:.2f}
Total savings: {metrics.total_savings:.2f}
Total liabilities: {metrics.total_liabilities:.2f}
Savings rate: {metrics.savings_rate:.1f}%
Debt-to-income ratio: {metrics.debt_to_income_ratio:.2f}
Budget utilization: {metrics.budget_utilization:.1f}%
Net worth: {metrics.net_worth:.2f}
Goals: {metrics.goals_count}
Liabilities: {metrics.liabilities_count}

Use ONLY these numbers. Respond with ONLY a JSON object in this exact format:
{{"summary": "two sentences", "forecast": "six month outlook",
"recommendations": [{{"title": "...", "description": "...", "priority": "high|medium|low"}}],
"health_score": 0-100}}

Give at most 3 recommendations."""

    def _parse_forecast(self, data: dict[str, Any]) -> FinancialForecast:
        recommendations = []
        for item in (data.get("recommendations") or [])[:3]:
            priority = str(item.get("priority") or item.get("impact") or "medium").lower()
            if priority not in {p.value for p in RecommendationPriority}:
                priority = RecommendationPriority.MEDIUM.value
            recommendations.append(Recommendation(
                title=item["title"],
                description=item["description"],
                priority=priority,
            ))

        score = data.get("health_score", data.get("healthScore"))
        return FinancialForecast(
            summary=data["summary"],
            forecast=data["forecast"],
            recommendations=recommendations,
            health_score=int(round(float(score))),
            fallback=False,
        )

    async def forecast(self, metrics: FinancialMetrics) -> FinancialForecast:
        """
        Assess `metrics`.

        Never raises: on any problem the rule-based forecast is returned.
        """
        if not self.has_model:
            await self._record_fallback("model_not_configured")
            return fallback_forecast(metrics)

        try:
            data = await self._ask(self._build_prompt(metrics))
            return self._parse_forecast(data)
        except Exception as e:
            await self._record_fallback(f"{type(e).__name__}: {e}")
            return fallback_forecast(metrics)
