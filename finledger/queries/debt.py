"""
Debt Repayment Projection

Month-by-month simulation of paying off every active liability.

Each month, for each unpaid debt in strategy order:
1. interest accrues at interest_rate / 12
2. the monthly payment (plus any extra, which goes to the first unpaid
   debt) is capped at balance + interest
3. whatever exceeds the interest reduces the balance

The simulation stops when everything is paid or after 360 months.
Projections are floats: they are estimates, not ledger entries.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from finledger.dates import add_months
from finledger.models.insights import (
    DebtPaymentPlan,
    DebtRepaymentMethod,
    DebtRepaymentStrategy,
    ScheduledPayment,
)
from finledger.models.ledger import Liability


MAX_MONTHS = 360


def _order(liabilities: list[Liability], method: DebtRepaymentMethod) -> list[Liability]:
    if method == DebtRepaymentMethod.AVALANCHE:
        return sorted(liabilities, key=lambda l: l.interest_rate, reverse=True)
    return sorted(liabilities, key=lambda l: l.remaining_amount)


def calculate_debt_repayment_strategy(
    liabilities: list[Liability],
    method: DebtRepaymentMethod = DebtRepaymentMethod.AVALANCHE,
    extra_payment: Decimal = Decimal("0"),
    start_date: Optional[date] = None,
) -> DebtRepaymentStrategy:
    """
    Project payoff of all liabilities with a remaining balance.

    Paid-off liabilities are ignored. A debt whose payment never covers its
    interest keeps `payoff_date=None`, and so does the strategy.
    """
    start_date = start_date or date.today()
    extra = float(extra_payment)

    active = _order([l for l in liabilities if l.remaining_amount > 0], method)
    if not active:
        return DebtRepaymentStrategy(
            method=method,
            extra_payment=extra,
            payoff_date=start_date,
        )

    plans = [
        DebtPaymentPlan(
            liability_id=l.id,
            name=l.name,
            starting_balance=float(l.remaining_amount),
            interest_rate=float(l.interest_rate),
            monthly_payment=float(l.monthly_payment),
        )
        for l in active
    ]
    balances = [plan.starting_balance for plan in plans]

    total_interest = 0.0
    total_paid = 0.0
    months = 0

    while months < MAX_MONTHS and any(b > 0 for b in balances):
        payment_date = add_months(start_date, months, desired_day=start_date.day)
        months += 1
        available_extra = extra

        for i, plan in enumerate(plans):
            if balances[i] <= 0:
                continue

            interest = balances[i] * plan.interest_rate / 100 / 12
            payment = plan.monthly_payment + available_extra
            available_extra = 0.0

            if payment >= balances[i] + interest:
                payment = balances[i] + interest
                principal = balances[i]
                balances[i] = 0.0
            else:
                principal = max(0.0, payment - interest)
                balances[i] = max(0.0, balances[i] - principal)

            total_interest += interest
            total_paid += payment
            plan.total_interest += interest
            plan.payments.append(ScheduledPayment(
                payment_date=payment_date,
                payment=payment,
                principal=principal,
                interest=interest,
                remaining_balance=balances[i],
            ))

            if balances[i] == 0:
                plan.payoff_date = payment_date

    payoff_dates = [plan.payoff_date for plan in plans]
    return DebtRepaymentStrategy(
        method=method,
        extra_payment=extra,
        total_months=months,
        total_interest_paid=total_interest,
        total_paid=total_paid,
        payoff_date=None if None in payoff_dates else max(payoff_dates),
        debt_plans=plans,
    )
