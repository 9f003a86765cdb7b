from datetime import datetime, timezone
from decimal import Decimal

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()

MONEY = db.Numeric(10, 2)
ZERO = Decimal('0')


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    balance = db.Column(MONEY, nullable=False, default=ZERO)
    schufa_score = db.Column(db.Integer, nullable=True)


class Transaction(db.Model):
    __tablename__ = 'transactions'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    amount = db.Column(MONEY, nullable=False)  # always positive
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(100), nullable=False)
    date = db.Column(db.DateTime, nullable=False, default=_utcnow, index=True)
    type = db.Column(db.String(20), nullable=False)  # 'income' or 'expense'


class Budget(db.Model):
    __tablename__ = 'budgets'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    category = db.Column(db.String(100), nullable=False)
    amount = db.Column(MONEY, nullable=False)
    period = db.Column(db.String(40), nullable=False)
    spent = db.Column(MONEY, nullable=False, default=ZERO)


class SavingsGoal(db.Model):
    __tablename__ = 'savings_goals'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    target_amount = db.Column(MONEY, nullable=False)
    current_amount = db.Column(MONEY, nullable=False, default=ZERO)
    deadline = db.Column(db.DateTime, nullable=True)


class Contract(db.Model):
    __tablename__ = 'contracts'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    provider = db.Column(db.String(200), nullable=False)
    cost = db.Column(MONEY, nullable=False)
    billing_cycle = db.Column(db.String(20), nullable=False)  # 'monthly' or 'yearly'
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=True)  # None means open-ended
    auto_renewal = db.Column(db.Boolean, nullable=False, default=False)
    category = db.Column(db.String(100), nullable=False)
    notes = db.Column(db.Text, nullable=True)


class CryptoHolding(db.Model):
    __tablename__ = 'crypto_holdings'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    currency = db.Column(db.String(20), nullable=False)
    amount = db.Column(db.Numeric(18, 8), nullable=False)
    purchase_price = db.Column(MONEY, nullable=False)
    current_price = db.Column(MONEY, nullable=False)

    @property
    def value(self):
        return self.amount * self.current_price

    @property
    def invested(self):
        return self.amount * self.purchase_price

    @property
    def profit_loss(self):
        # read-time only, never stored
        return self.amount * (self.current_price - self.purchase_price)
