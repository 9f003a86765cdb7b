from datetime import datetime
from decimal import Decimal

import pytest

from schemas import TransactionCreate
from rules import contribute_to_goal, create_owned, record_transaction, refresh_crypto_price, to_money
from storage import DuplicateUserError, UnknownUserError


def expense(user_id, amount, category='Lebensmittel', **extra):
    fields = {
        'user_id': user_id,
        'amount': Decimal(amount),
        'description': 'test',
        'category': category,
        'date': None,
        'type': 'expense',
    }
    fields.update(extra)
    return fields


class TestStore:
    def test_ids_are_per_kind(self, store, user):
        budget = store.create_budget({'user_id': user.id, 'category': 'A', 'amount': Decimal('1'),
                                      'period': 'monthly', 'spent': Decimal('0')})
        holding = store.create_crypto_holding({'user_id': user.id, 'currency': 'BTC', 'amount': Decimal('1'),
                                               'purchase_price': Decimal('1'), 'current_price': Decimal('1')})
        assert budget.id == 1
        assert holding.id == 1

    def test_missing_records_are_none(self, store):
        assert store.get_user(42) is None
        assert store.get_contract(42) is None
        assert store.update_contract(42, {'notes': 'x'}) is None
        assert store.delete_contract(42) is False

    def test_password_is_hashed(self, store, user):
        assert user.password_hash != 'password123'
        assert store.get_user_by_username('max').id == user.id

    def test_duplicate_username(self, store, user):
        with pytest.raises(DuplicateUserError):
            store.create_user({'username': 'max', 'password': 'x', 'first_name': 'M', 'last_name': 'M',
                               'email': 'other@example.com', 'balance': Decimal('0')})

    def test_transaction_date_defaults_to_now(self, store, user):
        transaction = record_transaction(store, expense(user.id, '1.00'))
        assert isinstance(transaction.date, datetime)


class TestRecordTransaction:
    def test_first_matching_budget_wins(self, store, user):
        first = store.create_budget({'user_id': user.id, 'category': 'Lebensmittel', 'amount': Decimal('100'),
                                     'period': 'monthly', 'spent': Decimal('0')})
        second = store.create_budget({'user_id': user.id, 'category': 'Lebensmittel', 'amount': Decimal('100'),
                                      'period': 'yearly', 'spent': Decimal('0')})
        record_transaction(store, expense(user.id, '12.50'))
        assert store.get_budget(first.id).spent == Decimal('12.50')
        assert store.get_budget(second.id).spent == Decimal('0')

    def test_category_match_is_exact(self, store, user):
        budget = store.create_budget({'user_id': user.id, 'category': 'Lebensmittel', 'amount': Decimal('100'),
                                      'period': 'monthly', 'spent': Decimal('0')})
        record_transaction(store, expense(user.id, '5.00', category='lebensmittel'))
        assert store.get_budget(budget.id).spent == Decimal('0')

    def test_other_users_budget_untouched(self, store, user):
        other = store.create_user({'username': 'erika', 'password': 'pw', 'first_name': 'E', 'last_name': 'M',
                                   'email': 'erika@example.com', 'balance': Decimal('0')})
        budget = store.create_budget({'user_id': other.id, 'category': 'Lebensmittel', 'amount': Decimal('100'),
                                      'period': 'monthly', 'spent': Decimal('0')})
        record_transaction(store, expense(user.id, '5.00'))
        assert store.get_budget(budget.id).spent == Decimal('0')

    def test_validated_payload_propagates(self, store, user):
        budget = store.create_budget({'user_id': user.id, 'category': 'Lebensmittel', 'amount': Decimal('300'),
                                      'period': 'monthly', 'spent': Decimal('0')})
        payload = TransactionCreate.model_validate({
            'userId': user.id, 'amount': '45.99', 'description': 'Wocheneinkauf',
            'category': 'Lebensmittel', 'type': 'expense',
        })
        record_transaction(store, payload.model_dump())
        assert store.get_budget(budget.id).spent == Decimal('45.99')
        assert store.get_user(user.id).balance == Decimal('2454.01')

    def test_failure_after_insert_rolls_back_everything(self, store, user, monkeypatch):
        def broken_lookup(*args, **kwargs):
            raise RuntimeError('budget lookup failed')

        monkeypatch.setattr(store, 'find_budget', broken_lookup)
        with pytest.raises(RuntimeError):
            record_transaction(store, expense(user.id, '45.99'))
        assert store.list_transactions(user.id) == []
        assert store.get_user(user.id).balance == Decimal('2500.00')

    def test_unknown_user_rolls_back(self, store, user):
        with pytest.raises(UnknownUserError):
            record_transaction(store, expense(999, '5.00'))
        assert store.list_transactions(999) == []


class TestContributeToGoal:
    def test_unknown_goal_returns_none(self, store, user):
        assert contribute_to_goal(store, 999, 10) is None
        assert store.get_user(user.id).balance == Decimal('2500.00')

    def test_all_or_nothing_when_owner_missing(self, store, user):
        # written straight through the store, so the owner check is bypassed
        goal = store.create_savings_goal({'user_id': 999, 'name': 'Orphan', 'target_amount': Decimal('100'),
                                          'current_amount': Decimal('0'), 'deadline': None})
        with pytest.raises(UnknownUserError):
            contribute_to_goal(store, goal.id, 10)
        assert store.get_savings_goal(goal.id).current_amount == Decimal('0')

    def test_negative_contribution_withdraws(self, store, user):
        goal = store.create_savings_goal({'user_id': user.id, 'name': 'Trip', 'target_amount': Decimal('100'),
                                          'current_amount': Decimal('50'), 'deadline': None})
        contribute_to_goal(store, goal.id, -20)
        assert store.get_savings_goal(goal.id).current_amount == Decimal('30.00')
        assert store.get_user(user.id).balance == Decimal('2520.00')


class TestOwnedCreation:
    def test_rejects_unknown_owner(self, store, user):
        with pytest.raises(UnknownUserError):
            create_owned(store, store.create_budget, {'user_id': 7, 'category': 'A', 'amount': Decimal('1'),
                                                      'period': 'monthly', 'spent': Decimal('0')})
        assert store.list_budgets(7) == []


class TestCryptoPrice:
    def test_refresh_unknown_holding(self, store):
        assert refresh_crypto_price(store, 5, 100) is None

    def test_refresh_rounds_to_cents(self, store, user):
        holding = store.create_crypto_holding({'user_id': user.id, 'currency': 'ETH', 'amount': Decimal('2'),
                                               'purchase_price': Decimal('1000'), 'current_price': Decimal('1000')})
        refreshed = refresh_crypto_price(store, holding.id, 1234.565)
        assert refreshed.current_price == Decimal('1234.57')
        assert refreshed.purchase_price == Decimal('1000')
        assert refreshed.profit_loss == Decimal('469.14')


def test_to_money():
    assert to_money(250) == Decimal('250.00')
    assert to_money(0.1) == Decimal('0.10')
    assert str(to_money(Decimal('1.005'))) == '1.01'
