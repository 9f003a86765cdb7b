"""
Mutation rules that keep derived aggregates in step with raw events.

User.balance, Budget.spent and SavingsGoal.currentAmount are never recomputed
from history; each rule below applies its increment in the same database
transaction as the triggering write, with the touched rows locked for update.
"""

from decimal import Decimal, ROUND_HALF_UP

import structlog

from schemas import CENT

logger = structlog.get_logger(__name__)


def to_money(value) -> Decimal:
    """Convert a JSON number (or Decimal) to a 2-place Decimal."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def signed_amount(transaction) -> Decimal:
    return transaction.amount if transaction.type == 'income' else -transaction.amount


def record_transaction(store, fields):
    """
    Store a transaction and propagate it.

    The balance moves by +amount for income and -amount for expense. An
    expense also adds its amount to the first budget of the user whose
    category matches exactly; budgets created later never see it.
    """
    with store.atomic():
        user = store.require_user(fields['user_id'], for_update=True)
        transaction = store.create_transaction(fields)
        delta = signed_amount(transaction)
        user.balance = user.balance + delta

        budget = None
        if transaction.type == 'expense':
            budget = store.find_budget(user.id, transaction.category, for_update=True)
            if budget is not None:
                budget.spent = budget.spent + transaction.amount

    logger.info(
        'transaction_recorded',
        transaction_id=transaction.id,
        user_id=user.id,
        type=transaction.type,
        amount=str(transaction.amount),
        balance=str(user.balance),
    )
    if budget is not None:
        logger.info('budget_spent_updated', budget_id=budget.id, category=budget.category, spent=str(budget.spent))
    return transaction


def create_owned(store, create, fields):
    """Create an entity owned by ``fields['user_id']`` after checking the owner exists."""
    with store.atomic():
        store.require_user(fields['user_id'])
        return create(fields)


def contribute_to_goal(store, goal_id, amount):
    """
    Move ``amount`` from the owner's balance into a savings goal.

    Returns None when the goal does not exist; in that case nothing changes.
    """
    amount = to_money(amount)
    with store.atomic():
        goal = store.get_savings_goal(goal_id, for_update=True)
        if goal is None:
            return None
        user = store.require_user(goal.user_id, for_update=True)
        goal.current_amount = goal.current_amount + amount
        user.balance = user.balance - amount

    logger.info(
        'savings_contribution_applied',
        goal_id=goal.id,
        user_id=goal.user_id,
        amount=str(amount),
        current_amount=str(goal.current_amount),
    )
    return goal


def refresh_crypto_price(store, holding_id, price):
    """Replace the current price only; amount and purchase price stay as bought."""
    holding = store.update_crypto_holding(holding_id, {'current_price': to_money(price)})
    if holding is not None:
        logger.info('crypto_price_refreshed', holding_id=holding.id, currency=holding.currency,
                    current_price=str(holding.current_price))
    return holding
