"""
Request and response schemas, one per entity kind.

Each ``<Kind>Create`` model declares the writable fields of an entity once:
the endpoint layer validates request bodies with it, and its snake_case
field names are the column names in ``models.py`` so a validated payload can
be handed to the ORM as-is. ``<Kind>Read`` extends it with the id and the
read-time values and renders camelCase JSON.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated, Literal, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    PlainSerializer,
    ValidationError,
    computed_field,
    model_validator,
)
from pydantic.alias_generators import to_camel

CENT = Decimal('0.01')


def format_money(value: Decimal) -> str:
    return f'{value:.2f}'


def format_quantity(value: Decimal) -> str:
    return format(value.normalize(), 'f')


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


Money = Annotated[
    Decimal,
    Field(max_digits=10, decimal_places=2),
    PlainSerializer(format_money, return_type=str, when_used='json'),
]
NonNegativeMoney = Annotated[
    Decimal,
    Field(ge=0, max_digits=10, decimal_places=2),
    PlainSerializer(format_money, return_type=str, when_used='json'),
]
PositiveMoney = Annotated[
    Decimal,
    Field(gt=0, max_digits=10, decimal_places=2),
    PlainSerializer(format_money, return_type=str, when_used='json'),
]
Quantity = Annotated[
    Decimal,
    Field(gt=0, max_digits=18, decimal_places=8),
    PlainSerializer(format_quantity, return_type=str, when_used='json'),
]
MoneyOut = Annotated[Decimal, PlainSerializer(format_money, return_type=str, when_used='json')]
Timestamp = Annotated[datetime, AfterValidator(_naive_utc)]
Text = Annotated[str, Field(min_length=1)]


class Schema(BaseModel):
    """Base for all API schemas: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra='ignore',
    )

    @classmethod
    def from_row(cls, row):
        """Wrap a stored ORM row without re-validating it."""
        values = {name: getattr(row, name) for name in cls.model_fields}
        return cls.model_construct(**values)

    def to_json(self) -> dict:
        return self.model_dump(mode='json', by_alias=True)


# ---------------------- Users ----------------------
class UserCreate(Schema):
    username: Text
    password: Text
    first_name: Text
    last_name: Text
    email: EmailStr
    balance: Money = Decimal('0')
    schufa_score: Optional[int] = Field(default=None, ge=0, le=100)


class UserRead(Schema):
    id: int
    username: str
    first_name: str
    last_name: str
    email: str
    balance: Money
    schufa_score: Optional[int] = None


# ---------------------- Transactions ----------------------
class TransactionCreate(Schema):
    user_id: int
    # Unsigned magnitude; ``type`` carries the direction.
    amount: PositiveMoney
    description: str
    category: Text
    date: Optional[Timestamp] = None
    type: Literal['income', 'expense']


class TransactionRead(TransactionCreate):
    id: int


# ---------------------- Budgets ----------------------
class BudgetCreate(Schema):
    user_id: int
    category: Text
    amount: PositiveMoney
    period: Text
    spent: NonNegativeMoney = Decimal('0')


class BudgetRead(BudgetCreate):
    id: int
    spent: Money

    @computed_field
    @property
    def remaining(self) -> MoneyOut:
        return self.amount - self.spent


# ---------------------- Savings goals ----------------------
class SavingsGoalCreate(Schema):
    user_id: int
    name: Text
    target_amount: PositiveMoney
    current_amount: NonNegativeMoney = Decimal('0')
    deadline: Optional[Timestamp] = None


class SavingsGoalRead(SavingsGoalCreate):
    id: int
    current_amount: Money

    @computed_field
    @property
    def progress(self) -> float:
        percent = self.current_amount / self.target_amount * 100
        percent = min(max(percent, Decimal('0')), Decimal('100'))
        return float(percent.quantize(CENT))


# ---------------------- Contracts ----------------------
NOT_NULL_CONTRACT_FIELDS = frozenset({
    'name', 'provider', 'cost', 'billing_cycle', 'start_date', 'auto_renewal', 'category',
})


class ContractCreate(Schema):
    user_id: int
    name: Text
    provider: Text
    cost: NonNegativeMoney
    billing_cycle: Literal['monthly', 'yearly']
    start_date: Timestamp
    end_date: Optional[Timestamp] = None
    auto_renewal: bool = False
    category: Text
    notes: Optional[str] = None


class ContractUpdate(Schema):
    """Partial contract update; only the fields sent are applied."""

    model_config = ConfigDict(extra='forbid')

    name: Optional[Text] = None
    provider: Optional[Text] = None
    cost: Optional[NonNegativeMoney] = None
    billing_cycle: Optional[Literal['monthly', 'yearly']] = None
    start_date: Optional[Timestamp] = None
    end_date: Optional[Timestamp] = None
    auto_renewal: Optional[bool] = None
    category: Optional[Text] = None
    notes: Optional[str] = None

    @model_validator(mode='after')
    def reject_null_required(self):
        for name in self.model_fields_set & NOT_NULL_CONTRACT_FIELDS:
            if getattr(self, name) is None:
                raise ValueError(f'{to_camel(name)} cannot be null')
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class ContractRead(ContractCreate):
    id: int


# ---------------------- Crypto holdings ----------------------
class CryptoHoldingCreate(Schema):
    user_id: int
    currency: Annotated[str, Field(min_length=1, max_length=20)]
    amount: Quantity
    purchase_price: NonNegativeMoney
    current_price: NonNegativeMoney


class CryptoHoldingRead(CryptoHoldingCreate):
    id: int

    @computed_field(alias='value')
    @property
    def value(self) -> MoneyOut:
        return (self.amount * self.current_price).quantize(CENT)

    @computed_field(alias='profitLoss')
    @property
    def profit_loss(self) -> MoneyOut:
        return (self.amount * (self.current_price - self.purchase_price)).quantize(CENT)


# ---------------------- PATCH bodies ----------------------
MONEY_LIMIT = Decimal('10') ** 8  # Numeric(10, 2)


def _to_cents(value: Decimal) -> Decimal:
    if abs(value) < MONEY_LIMIT:
        value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    if abs(value) >= MONEY_LIMIT:
        raise ValueError(f'must be less than {MONEY_LIMIT} in magnitude')
    return value


Cents = Annotated[Decimal, AfterValidator(_to_cents)]


class Contribution(Schema):
    """Amount moved into a savings goal; negative withdraws."""

    amount: Cents


class PriceRefresh(Schema):
    price: Annotated[Cents, Field(ge=0)]


def describe_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic error into one human readable line."""
    parts = []
    for issue in error.errors():
        location = '.'.join(str(part) for part in issue['loc'])
        parts.append(f"{location}: {issue['msg']}" if location else issue['msg'])
    return 'Validation error: ' + '; '.join(parts)
