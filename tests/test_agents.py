"""
Tests for the advisory agents and their rule-based fallbacks.

The Gemini model is replaced by a fake; nothing here calls the network.
"""

import json

import pytest

from finledger.agents import (
    CategorizationAgent,
    ForecastAgent,
    build_recommendations,
    categorize_description,
    compute_health_score,
    extract_json,
    fallback_forecast,
    health_status,
)
from finledger.audit import AuditLogger
from finledger.models import AuditEventType, FinancialMetrics, TransactionType
from finledger.services.storage import InMemoryAuditStorage


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return FakeResponse(self.answer)


class TestRuleCategorizer:
    """Keyword fallback."""

    def test_uber_is_transportation(self):
        """Test the documented example."""
        suggestion = categorize_description("Uber ride downtown")
        assert suggestion.type == TransactionType.EXPENSE
        assert suggestion.category == "Transportation"
        assert suggestion.fallback is True
        assert suggestion.confidence == 0.7

    @pytest.mark.parametrize("text,type_,category", [
        ("Monthly salary", TransactionType.INCOME, "Salary"),
        ("Freelance logo design", TransactionType.INCOME, "Freelance"),
        ("Quarterly dividend", TransactionType.INCOME, "Investment"),
        ("Birthday gift from grandma", TransactionType.INCOME, "Gift"),
        ("April rent", TransactionType.EXPENSE, "Housing"),
        ("Weekly grocery shopping", TransactionType.EXPENSE, "Food"),
        ("Netflix subscription", TransactionType.EXPENSE, "Entertainment"),
        ("Pharmacy", TransactionType.EXPENSE, "Healthcare"),
        ("Amazon order", TransactionType.EXPENSE, "Shopping"),
        ("Electric company", TransactionType.EXPENSE, "Bills"),
    ])
    def test_keyword_rules(self, text, type_, category):
        """Test each rule group."""
        suggestion = categorize_description(text)
        assert (suggestion.type, suggestion.category) == (type_, category)

    def test_first_rule_wins(self):
        """Test income rules take priority over expense rules."""
        assert categorize_description("bonus dinner").category == "Gift"

    def test_unmatched_defaults_to_other_expense(self):
        """Test the default suggestion."""
        for text in ("", "xyzzy"):
            suggestion = categorize_description(text)
            assert suggestion.type == TransactionType.EXPENSE
            assert suggestion.category == "Other"


class TestHealthScore:
    """Rule-based health score and forecast."""

    def test_ideal_metrics_score_80(self):
        """Test full savings points and perfect budget use."""
        metrics = FinancialMetrics(savings_rate=25, debt_to_income_ratio=0, budget_utilization=80)
        assert compute_health_score(metrics) == 80
        assert health_status(80) == "excellent"

    def test_terms_are_clamped(self):
        """Test each term stays inside its range."""
        metrics = FinancialMetrics(savings_rate=-50, debt_to_income_ratio=3, budget_utilization=0)
        # 50 + 0 - 20 - 10
        assert compute_health_score(metrics) == 20
        assert health_status(20) == "needs improvement"

    def test_status_bands(self):
        """Test the band thresholds."""
        assert health_status(60) == "good"
        assert health_status(40) == "fair"
        assert health_status(39) == "needs improvement"

    def test_healthy_metrics_get_general_advice(self):
        """Test healthy metrics only get the general recommendations."""
        metrics = FinancialMetrics(
            monthly_income=5000,
            monthly_expenses=1000,
            total_savings=10000,
            savings_rate=80,
            budget_utilization=50,
        )
        titles = [r.title for r in build_recommendations(metrics)]
        assert titles == ["Diversify Income Sources", "Review and Optimize Investments"]

    def test_recommendations_most_pressing_first(self):
        """Test poor metrics lead with the high-priority advice."""
        metrics = FinancialMetrics(
            monthly_income=1000,
            monthly_expenses=950,
            total_liabilities=20000,
            savings_rate=5,
            debt_to_income_ratio=1.6,
            budget_utilization=99,
        )
        recommendations = build_recommendations(metrics)
        assert len(recommendations) == 3
        assert recommendations[0].title == "Increase Your Savings Rate"
        assert recommendations[1].title == "Reduce Debt-to-Income Ratio"

    def test_fallback_forecast_shape(self):
        """Test the fallback forecast fills every field."""
        metrics = FinancialMetrics(
            monthly_income=4000,
            monthly_expenses=3000,
            total_liabilities=1000,
            savings_rate=25,
            budget_utilization=80,
            net_worth=12000,
        )
        forecast = fallback_forecast(metrics)
        assert forecast.fallback is True
        assert 0 <= forecast.health_score <= 100
        assert "increase your net worth" in forecast.forecast
        assert "liabilities" in forecast.forecast
        assert forecast.summary.startswith("Your financial health is")


class TestExtractJson:
    def test_extracts_wrapped_object(self):
        assert extract_json('Sure! ```{"a": 1}```') == {"a": 1}

    def test_rejects_missing_object(self):
        with pytest.raises(ValueError):
            extract_json("no json here")


class TestCategorizationAgent:
    """Gemini-backed categorizer with transparent fallback."""

    @pytest.mark.asyncio
    async def test_uses_model_answer(self, settings):
        """Test a valid model answer is returned as-is."""
        model = FakeModel(json.dumps({"type": "expense", "category": "food", "confidence": 0.9}))
        agent = CategorizationAgent(model=model, ledger_settings=settings)

        suggestion = await agent.categorize("Sushi place")

        assert suggestion.category == "Food"
        assert suggestion.fallback is False
        assert "Sushi place" in model.prompts[0]

    @pytest.mark.asyncio
    async def test_unknown_category_falls_back(self, settings):
        """Test categories outside the known lists are discarded."""
        model = FakeModel(json.dumps({"type": "expense", "category": "Rideshare"}))
        agent = CategorizationAgent(model=model, ledger_settings=settings)

        suggestion = await agent.categorize("Uber ride downtown")

        assert suggestion.category == "Transportation"
        assert suggestion.fallback is True

    @pytest.mark.asyncio
    async def test_low_confidence_falls_back(self, settings):
        """Test answers under the confidence floor are discarded."""
        model = FakeModel(json.dumps({"type": "expense", "category": "Bills", "confidence": 0.1}))
        agent = CategorizationAgent(model=model, ledger_settings=settings)

        suggestion = await agent.categorize("Netflix")

        assert suggestion.category == "Entertainment"
        assert suggestion.fallback is True

    @pytest.mark.asyncio
    async def test_upstream_error_is_audited(self, settings):
        """Test an upstream failure falls back and leaves an audit event."""
        audit_storage = InMemoryAuditStorage()
        agent = CategorizationAgent(
            model=FakeModel(error=RuntimeError("quota exceeded")),
            ledger_settings=settings,
            audit_logger=AuditLogger(storage=audit_storage),
        )

        suggestion = await agent.categorize("Uber ride downtown")

        assert (suggestion.type, suggestion.category, suggestion.fallback) == (
            TransactionType.EXPENSE, "Transportation", True,
        )
        fallback, upstream = await audit_storage.get_recent_events()
        assert fallback.event_type == AuditEventType.ADVISORY_FALLBACK_USED
        assert "quota exceeded" in fallback.error_message
        assert upstream.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert upstream.details == {"service": "gemini"}

    @pytest.mark.asyncio
    async def test_missing_api_key_runs_on_rules(self, settings, monkeypatch):
        """Test the agent works without Gemini configured."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        agent = CategorizationAgent(ledger_settings=settings)

        assert not agent.has_model
        suggestion = await agent.categorize("Paycheck")
        assert suggestion.category == "Salary"
        assert suggestion.fallback is True


class TestForecastAgent:
    """Gemini-backed forecaster with transparent fallback."""

    @pytest.mark.asyncio
    async def test_uses_model_answer(self, settings):
        """Test a well-formed model answer is returned."""
        model = FakeModel(json.dumps({
            "summary": "Solid.",
            "forecast": "Growing.",
            "recommendations": [
                {"title": "Keep going", "description": "Stay the course.", "priority": "low"},
            ],
            "health_score": 77,
        }))
        agent = ForecastAgent(model=model, ledger_settings=settings)

        forecast = await agent.forecast(FinancialMetrics(monthly_income=1000))

        assert forecast.fallback is False
        assert forecast.health_score == 77
        assert forecast.recommendations[0].priority == "low"

    @pytest.mark.asyncio
    async def test_malformed_answer_falls_back(self, settings):
        """Test missing fields trigger the rule-based forecast."""
        agent = ForecastAgent(model=FakeModel('{"summary": "only this"}'), ledger_settings=settings)

        forecast = await agent.forecast(FinancialMetrics(savings_rate=25, budget_utilization=80))

        assert forecast.fallback is True
        assert forecast.health_score == 80
        # Healthy metrics fire no rule, so only the two general tips remain
        assert [r.title for r in forecast.recommendations] == [
            "Diversify Income Sources",
            "Review and Optimize Investments",
        ]
