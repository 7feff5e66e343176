"""
Tests for the pure reconciliation planners.

Planners never touch storage, so these build snapshots by hand.
"""

import pytest
from decimal import Decimal

from conftest import make_goal, make_liability
from finledger.models import (
    AddLiabilityAction,
    AddSplitTransactionAction,
    AddTransactionAction,
    GoalTransferAction,
    LedgerSnapshot,
    LiabilityPaymentAction,
    LiabilityType,
    StepOperation,
    TransactionType,
)
from finledger.reconciliation import (
    actual_payment,
    clamp_goal_amount,
    plan_action,
    reduce_remaining,
)


class TestClampingLaws:
    """Balances always stay in range."""

    @pytest.mark.parametrize("current,delta,target,expected", [
        ("400", "200", "500", "500"),
        ("100", "50", "500", "150"),
        ("100", "-150", "500", "0"),
        ("0", "-1", "500", "0"),
        ("500", "0", "500", "500"),
    ])
    def test_clamp_goal_amount(self, current, delta, target, expected):
        """Test clamp(current + delta, 0, target)."""
        assert clamp_goal_amount(
            Decimal(current), Decimal(delta), Decimal(target)
        ) == Decimal(expected)

    @pytest.mark.parametrize("remaining,payment,expected", [
        ("1000", "100", "900"),
        ("150", "500", "0"),
        ("0", "10", "0"),
    ])
    def test_reduce_remaining(self, remaining, payment, expected):
        """Test max(0, remaining - payment)."""
        assert reduce_remaining(Decimal(remaining), Decimal(payment)) == Decimal(expected)

    def test_actual_payment_is_minimum(self):
        """Test actual = min(requested, remaining)."""
        assert actual_payment(Decimal("500"), Decimal("150")) == Decimal("150")
        assert actual_payment(Decimal("50"), Decimal("150")) == Decimal("50")


class TestPlanOrdering:
    """Steps come out in the order they must be applied."""

    def test_add_transaction_with_both_tags(self):
        """Test transaction, then goal, then liability."""
        goal = make_goal(current="0", target="1000")
        liability = make_liability(remaining="300")
        action = AddTransactionAction(
            type=TransactionType.EXPENSE,
            amount=Decimal("100"),
            category="Savings",
            goal_id=goal.id,
            liability_id=liability.id,
        )
        plan = plan_action(action, LedgerSnapshot(goal=goal, liability=liability))

        assert [s.operation for s in plan.steps] == [
            StepOperation.CREATE_TRANSACTION,
            StepOperation.UPDATE_GOAL,
            StepOperation.UPDATE_LIABILITY,
        ]
        assert plan.steps[1].new_value == Decimal("100")
        assert plan.steps[2].new_value == Decimal("200")

    def test_goal_transfer_add_with_deduct(self):
        """Test goal is updated before the Savings expense is recorded."""
        goal = make_goal(current="400", target="500")
        action = GoalTransferAction(goal_id=goal.id, amount=Decimal("200"), direction="add")
        plan = plan_action(action, LedgerSnapshot(goal=goal))

        assert [s.operation for s in plan.steps] == [
            StepOperation.UPDATE_GOAL,
            StepOperation.CREATE_TRANSACTION,
        ]
        assert plan.steps[0].new_value == Decimal("500")
        txn = plan.steps[1].record
        assert txn.category == "Savings"
        assert txn.type == TransactionType.EXPENSE
        assert txn.amount == Decimal("200")
        assert txn.description == "Added to Vacation"

    def test_goal_transfer_add_without_deduct_is_tracking_only(self):
        """Test no transaction when the balance is not deducted."""
        goal = make_goal(current="0", target="500")
        action = GoalTransferAction(
            goal_id=goal.id,
            amount=Decimal("50"),
            direction="add",
            deduct_from_balance=False,
        )
        plan = plan_action(action, LedgerSnapshot(goal=goal))
        assert plan.is_tracking_only
        assert plan.transaction_count == 0

    def test_goal_withdrawal_records_income(self):
        """Test a manual withdrawal records Goal Withdrawal income."""
        goal = make_goal(current="300", target="500")
        action = GoalTransferAction(goal_id=goal.id, amount=Decimal("100"), direction="withdraw")
        plan = plan_action(action, LedgerSnapshot(goal=goal))

        txn = plan.steps[-1].record
        assert txn.type == TransactionType.INCOME
        assert txn.category == "Goal Withdrawal"
        assert txn.description == "Withdrawn from Vacation"
        assert plan.steps[0].new_value == Decimal("200")

    def test_emergency_fund_transfer_plan(self):
        """Test goal, fund, then one Internal Transfer transaction."""
        goal = make_goal(current="100", target="500")
        fund = make_goal(current="1000", target="2000", title="Rainy day", category="Emergency")
        action = GoalTransferAction(
            goal_id=goal.id,
            amount=Decimal("150"),
            direction="add",
            source="emergency_fund",
        )
        plan = plan_action(action, LedgerSnapshot(goal=goal, emergency_fund=fund))

        assert [s.entity_id for s in plan.steps[:2]] == [goal.id, fund.id]
        assert plan.steps[0].new_value == Decimal("250")
        assert plan.steps[1].new_value == Decimal("850")
        txn = plan.steps[2].record
        assert txn.category == "Internal Transfer"
        assert txn.description.endswith("(from Emergency Fund)")
        assert plan.transaction_count == 1

    def test_liability_overpayment_requires_confirmation(self):
        """Test overpayment is capped and flagged for confirmation."""
        liability = make_liability(remaining="150", total="1000")
        action = LiabilityPaymentAction(liability_id=liability.id, amount=Decimal("500"))
        plan = plan_action(action, LedgerSnapshot(liability=liability))

        assert plan.requires_confirmation
        assert plan.actual_amount == Decimal("150")
        assert plan.steps[0].record.amount == Decimal("150")
        assert plan.steps[0].record.description == "Payment for Car loan"
        assert plan.steps[1].new_value == Decimal("0")

    def test_liability_payment_without_transaction(self):
        """Test a tracking-only payment only updates the liability."""
        liability = make_liability(remaining="500")
        action = LiabilityPaymentAction(
            liability_id=liability.id,
            amount=Decimal("100"),
            create_transaction=False,
        )
        plan = plan_action(action, LedgerSnapshot(liability=liability))
        assert [s.operation for s in plan.steps] == [StepOperation.UPDATE_LIABILITY]
        assert not plan.requires_confirmation

    def test_add_loan_records_income(self):
        """Test a loan creates the liability then the Loan income."""
        action = AddLiabilityAction(
            name="Bike loan",
            type=LiabilityType.LOAN,
            total_amount=Decimal("2000"),
            due_date="2030-01-01",
        )
        plan = plan_action(action, LedgerSnapshot())

        assert plan.steps[0].operation == StepOperation.CREATE_LIABILITY
        income = plan.steps[1].record
        assert income.type == TransactionType.INCOME
        assert income.category == "Loan"
        assert income.description == "Loan received: Bike loan"
        assert income.transaction_date == action.start_date

    def test_add_purchase_never_records_income(self):
        """Test purchase liabilities skip income even when asked."""
        action = AddLiabilityAction(
            name="Phone",
            type=LiabilityType.PURCHASE,
            total_amount=Decimal("800"),
            due_date="2030-01-01",
            add_as_income=True,
        )
        plan = plan_action(action, LedgerSnapshot())
        assert plan.transaction_count == 0
        assert len(plan.steps) == 1

    def test_split_parent_then_children(self):
        """Test children point at the parent created first."""
        action = AddSplitTransactionAction(
            amount=Decimal("100"),
            description="Supermarket",
            splits=[
                {"amount": "70", "category": "Food"},
                {"amount": "30", "category": "Shopping", "description": "Kitchen towels"},
            ],
        )
        plan = plan_action(action, LedgerSnapshot())

        parent, first, second = [s.record for s in plan.steps]
        assert parent.category == "Split Transaction"
        assert first.parent_transaction_id == parent.id
        assert second.parent_transaction_id == parent.id
        assert first.description == "Supermarket"
        assert second.description == "Kitchen towels"
        assert plan.transaction_count == 3
