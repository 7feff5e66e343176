"""
Rule-Based Advisory Fallbacks

Deterministic versions of the two advisory answers. The AI agents return
these whenever the model is unavailable or answers with something we can't
parse, so callers always get the same shape back.

DESIGN DECISION: Keyword rules are checked in order and the first match
wins. Income rules come first, so "bonus dinner" is a Gift, not Food.
Matching is on plain substrings of the lowercased description.
"""

from finledger.models.insights import (
    CategorySuggestion,
    FinancialForecast,
    FinancialMetrics,
    Recommendation,
    RecommendationPriority,
)
from finledger.models.ledger import TransactionType


FALLBACK_CONFIDENCE = 0.7

INCOME_CATEGORIES = [
    "Salary",
    "Freelance",
    "Investment",
    "Business",
    "Bonus",
    "Gift",
    "Other",
]

EXPENSE_CATEGORIES = [
    "Housing",
    "Food",
    "Transportation",
    "Entertainment",
    "Healthcare",
    "Shopping",
    "Bills",
    "Savings",
    "Other",
]

# (type, category, keywords) in priority order
CATEGORY_RULES: list[tuple[TransactionType, str, tuple[str, ...]]] = [
    (TransactionType.INCOME, "Salary", ("salary", "paycheck", "wage", "direct deposit")),
    (TransactionType.INCOME, "Freelance", ("freelance", "contract", "gig", "client")),
    (TransactionType.INCOME, "Investment", ("dividend", "interest", "stock", "investment return")),
    (TransactionType.INCOME, "Gift", ("gift", "present", "bonus")),
    (TransactionType.EXPENSE, "Housing", ("rent", "mortgage", "housing", "apartment")),
    (TransactionType.EXPENSE, "Food", ("grocery", "food", "restaurant", "cafe", "meal", "dinner")),
    (TransactionType.EXPENSE, "Transportation", (
        "gas", "uber", "lyft", "taxi", "car", "train", "bus", "transit",
    )),
    (TransactionType.EXPENSE, "Entertainment", (
        "movie", "netflix", "spotify", "concert", "theater", "game",
    )),
    (TransactionType.EXPENSE, "Healthcare", ("doctor", "hospital", "medical", "pharmacy", "health")),
    (TransactionType.EXPENSE, "Shopping", ("amazon", "walmart", "target", "shop", "store", "mall")),
    (TransactionType.EXPENSE, "Bills", ("electric", "water", "utility", "internet", "phone", "bill")),
]


def categorize_description(text: str) -> CategorySuggestion:
    """
    Suggest a type and category for a transaction description.

    Never fails: unmatched (or empty) text is an expense in "Other".
    """
    lowered = (text or "").lower()

    for transaction_type, category, keywords in CATEGORY_RULES:
        if any(keyword in lowered for keyword in keywords):
            return CategorySuggestion(
                type=transaction_type,
                category=category,
                confidence=FALLBACK_CONFIDENCE,
                fallback=True,
            )

    return CategorySuggestion(
        type=TransactionType.EXPENSE,
        category="Other",
        confidence=FALLBACK_CONFIDENCE,
        fallback=True,
    )


def categories_for(transaction_type: TransactionType) -> list[str]:
    if transaction_type == TransactionType.INCOME:
        return INCOME_CATEGORIES
    return EXPENSE_CATEGORIES


# =============================================================================
# HEALTH SCORE
# =============================================================================

def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def compute_health_score(metrics: FinancialMetrics) -> int:
    """
    Score overall financial health from 0 to 100.

    Starts at 50, then:
    - savings rate adds 0..20 points (one per percent, capped)
    - debt-to-income subtracts 0..20 points (50 per unit of ratio, capped)
    - budget utilization adds -10..10 points, best at 80% used
    """
    score = 50.0
    score += _clamp(metrics.savings_rate, 0.0, 20.0)
    score -= _clamp(metrics.debt_to_income_ratio * 50, 0.0, 20.0)
    score += _clamp(10 - abs(metrics.budget_utilization - 80) / 2, -10.0, 10.0)
    return int(round(_clamp(score, 0.0, 100.0)))


def health_status(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "needs improvement"


# =============================================================================
# RECOMMENDATIONS
# =============================================================================

_PADDING_RECOMMENDATIONS = [
    Recommendation(
        title="Diversify Income Sources",
        description=(
            "Consider developing additional income streams to increase financial "
            "stability and accelerate progress toward your financial goals."
        ),
        priority=RecommendationPriority.MEDIUM,
    ),
    Recommendation(
        title="Review and Optimize Investments",
        description=(
            "Regularly review your investment portfolio to ensure it aligns with your "
            "risk tolerance and financial goals. Consider low-cost index funds for "
            "long-term growth."
        ),
        priority=RecommendationPriority.MEDIUM,
    ),
]


def build_recommendations(metrics: FinancialMetrics) -> list[Recommendation]:
    """Up to three recommendations, most pressing first, padded with general advice."""
    recommendations = []

    if metrics.savings_rate < 20:
        recommendations.append(Recommendation(
            title="Increase Your Savings Rate",
            description=(
                "Your current savings rate is below the recommended 20%. Try to increase "
                "your savings by reducing discretionary spending or finding additional "
                "income sources."
            ),
            priority=RecommendationPriority.HIGH,
        ))

    if metrics.debt_to_income_ratio > 0.36:
        recommendations.append(Recommendation(
            title="Reduce Debt-to-Income Ratio",
            description=(
                "Your debt-to-income ratio is above the recommended 36%. Focus on paying "
                "down high-interest debt first to improve your financial flexibility."
            ),
            priority=RecommendationPriority.HIGH,
        ))

    if metrics.total_savings < metrics.monthly_expenses * 3:
        recommendations.append(Recommendation(
            title="Build Emergency Fund",
            description=(
                "Your emergency fund should cover 3-6 months of expenses. "
                "Prioritize building this safety net."
            ),
            priority=RecommendationPriority.MEDIUM,
        ))

    if metrics.budget_utilization > 95:
        recommendations.append(Recommendation(
            title="Review Budget Allocations",
            description=(
                "You're using almost all of your budget, which leaves little room for "
                "unexpected expenses. Consider adjusting your budget categories or "
                "finding ways to reduce expenses."
            ),
            priority=RecommendationPriority.MEDIUM,
        ))

    if metrics.monthly_income > 0 and metrics.monthly_expenses / metrics.monthly_income > 0.7:
        recommendations.append(Recommendation(
            title="Reduce Expense-to-Income Ratio",
            description=(
                "Your expenses represent a high percentage of your income. Aim to keep "
                "this below 70% to allow for savings and financial flexibility."
            ),
            priority=RecommendationPriority.MEDIUM,
        ))

    for padding in _PADDING_RECOMMENDATIONS:
        if len(recommendations) >= 3:
            break
        recommendations.append(padding.model_copy())

    return recommendations[:3]


def fallback_forecast(metrics: FinancialMetrics) -> FinancialForecast:
    """Rule-based forecast with the same shape as the AI answer."""
    score = compute_health_score(metrics)
    status = health_status(score)

    summary = (
        f"Your financial health is {status} with a net worth of {metrics.net_worth:,.2f} "
        f"and a savings rate of {metrics.savings_rate:.1f}%. Your debt-to-income ratio is "
        f"{metrics.debt_to_income_ratio * 100:.1f}% and you're utilizing "
        f"{metrics.budget_utilization:.1f}% of your budget."
    )

    monthly_net = metrics.monthly_income - metrics.monthly_expenses
    direction = "increase" if monthly_net > 0 else "decrease"
    sentences = [
        f"Based on your current income of {metrics.monthly_income:,.2f} and expenses of "
        f"{metrics.monthly_expenses:,.2f} per month, you're projected to {direction} your "
        f"net worth by approximately {abs(monthly_net):,.2f} monthly."
    ]
    if metrics.total_liabilities > 0:
        sentences.append(
            f"Your debt repayment is on track to reduce your liabilities by about "
            f"{metrics.total_liabilities * 0.05:,.2f} in the next 6 months."
        )
    if metrics.savings_rate > 0:
        sentences.append(
            f"At your current savings rate, you'll add approximately "
            f"{metrics.monthly_income * metrics.savings_rate / 100 * 6:,.2f} "
            "to your savings in the next 6 months."
        )

    return FinancialForecast(
        summary=summary,
        forecast=" ".join(sentences),
        recommendations=build_recommendations(metrics),
        health_score=score,
        fallback=True,
    )
