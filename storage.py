"""
Entity store and query surface.

``FinanceStore`` is built once per application and owns every read and
write against the ORM session. Lookups return ``None`` (and deletes
``False``) for missing ids; deciding what absence means is left to callers.
Every write runs inside ``atomic()`` so that a caller can group several
writes into a single database transaction by opening an outer block.
"""

import threading
from contextlib import contextmanager

import structlog
from werkzeug.security import generate_password_hash

from models import db, User, Transaction, Budget, SavingsGoal, Contract, CryptoHolding

logger = structlog.get_logger(__name__)


class StoreError(Exception):
    """Base class for errors raised by the store and the mutation rules."""

    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class NotFoundError(StoreError):
    status_code = 404


class UnknownUserError(StoreError):
    """A write referenced a user id that does not exist."""

    def __init__(self, user_id):
        super().__init__(f'User {user_id} does not exist')
        self.user_id = user_id


class DuplicateUserError(StoreError):
    pass


class FinanceStore:
    def __init__(self, database=db):
        self._db = database
        self._local = threading.local()

    @property
    def session(self):
        return self._db.session

    @contextmanager
    def atomic(self):
        """Commit once when the outermost block exits, roll back on error."""
        depth = getattr(self._local, 'depth', 0)
        self._local.depth = depth + 1
        try:
            yield self.session
        except Exception:
            self._local.depth = depth
            if depth == 0:
                self.session.rollback()
            raise
        self._local.depth = depth
        if depth == 0:
            self.session.commit()

    # ---------------------- Generic helpers ----------------------
    def _create(self, model, fields):
        with self.atomic() as session:
            row = model(**fields)
            session.add(row)
            session.flush()
        return row

    def _get(self, model, row_id, for_update=False):
        if for_update:
            return self.session.get(model, row_id, with_for_update=True, populate_existing=True)
        return self.session.get(model, row_id)

    def _list_by_user(self, model, user_id, *order_by):
        return model.query.filter_by(user_id=user_id).order_by(*(order_by or (model.id,))).all()

    def _update(self, model, row_id, fields):
        with self.atomic():
            row = self._get(model, row_id, for_update=True)
            if row is None:
                return None
            for name, value in fields.items():
                setattr(row, name, value)
        return row

    def _delete(self, model, row_id):
        with self.atomic() as session:
            row = self._get(model, row_id)
            if row is None:
                return False
            session.delete(row)
        return True

    # ---------------------- Users ----------------------
    def create_user(self, fields):
        fields = dict(fields)
        if self.get_user_by_username(fields['username']) is not None:
            raise DuplicateUserError(f"Username '{fields['username']}' is already taken")
        if User.query.filter_by(email=fields['email']).first() is not None:
            raise DuplicateUserError(f"Email '{fields['email']}' is already registered")
        fields['password_hash'] = generate_password_hash(fields.pop('password'))
        user = self._create(User, fields)
        logger.info('user_created', user_id=user.id, username=user.username)
        return user

    def get_user(self, user_id, for_update=False):
        return self._get(User, user_id, for_update=for_update)

    def get_user_by_username(self, username):
        return User.query.filter_by(username=username).first()

    def require_user(self, user_id, for_update=False):
        user = self.get_user(user_id, for_update=for_update)
        if user is None:
            raise UnknownUserError(user_id)
        return user

    # ---------------------- Transactions ----------------------
    def create_transaction(self, fields):
        fields = {name: value for name, value in fields.items()
                  if not (name == 'date' and value is None)}
        return self._create(Transaction, fields)

    def get_transaction(self, transaction_id):
        return self._get(Transaction, transaction_id)

    def list_transactions(self, user_id):
        return self._list_by_user(Transaction, user_id, Transaction.date.desc(), Transaction.id.desc())

    # ---------------------- Budgets ----------------------
    def create_budget(self, fields):
        return self._create(Budget, fields)

    def get_budget(self, budget_id, for_update=False):
        return self._get(Budget, budget_id, for_update=for_update)

    def list_budgets(self, user_id):
        return self._list_by_user(Budget, user_id)

    def find_budget(self, user_id, category, for_update=False):
        """First budget of the user tracking exactly this category."""
        query = Budget.query.filter_by(user_id=user_id, category=category).order_by(Budget.id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def update_budget(self, budget_id, fields):
        return self._update(Budget, budget_id, fields)

    # ---------------------- Savings goals ----------------------
    def create_savings_goal(self, fields):
        return self._create(SavingsGoal, fields)

    def get_savings_goal(self, goal_id, for_update=False):
        return self._get(SavingsGoal, goal_id, for_update=for_update)

    def list_savings_goals(self, user_id):
        return self._list_by_user(SavingsGoal, user_id)

    def update_savings_goal(self, goal_id, fields):
        return self._update(SavingsGoal, goal_id, fields)

    # ---------------------- Contracts ----------------------
    def create_contract(self, fields):
        return self._create(Contract, fields)

    def get_contract(self, contract_id):
        return self._get(Contract, contract_id)

    def list_contracts(self, user_id):
        return self._list_by_user(Contract, user_id)

    def update_contract(self, contract_id, fields):
        return self._update(Contract, contract_id, fields)

    def delete_contract(self, contract_id):
        return self._delete(Contract, contract_id)

    # ---------------------- Crypto holdings ----------------------
    def create_crypto_holding(self, fields):
        return self._create(CryptoHolding, fields)

    def get_crypto_holding(self, holding_id):
        return self._get(CryptoHolding, holding_id)

    def list_crypto_holdings(self, user_id):
        return self._list_by_user(CryptoHolding, user_id)

    def update_crypto_holding(self, holding_id, fields):
        return self._update(CryptoHolding, holding_id, fields)

    def delete_crypto_holding(self, holding_id):
        return self._delete(CryptoHolding, holding_id)
