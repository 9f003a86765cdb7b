import logging
import math
import os
from decimal import Decimal

import click
import structlog
from flask import Blueprint, Flask, current_app, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from ml.recommender import build_insights
from models import db
from offers import contract_costs, find_best_offers
from rules import contribute_to_goal, create_owned, record_transaction, refresh_crypto_price
from schemas import (
    CENT,
    BudgetCreate, BudgetRead,
    Contribution,
    ContractCreate, ContractRead, ContractUpdate,
    CryptoHoldingCreate, CryptoHoldingRead,
    PriceRefresh,
    SavingsGoalCreate, SavingsGoalRead,
    TransactionCreate, TransactionRead,
    UserCreate, UserRead,
    describe_validation_error,
)
from schufa import schufa_report
from storage import FinanceStore, NotFoundError, StoreError

logger = structlog.get_logger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')


def configure_logging(level='INFO'):
    logging.basicConfig(format='%(message)s', level=getattr(logging, str(level).upper(), logging.INFO))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt='iso'),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_app(test_config=None):
    app = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///finance.db')
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-me')
    app.config['LOG_LEVEL'] = os.environ.get('LOG_LEVEL', 'INFO')
    if test_config:
        app.config.update(test_config)
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    configure_logging(app.config['LOG_LEVEL'])
    db.init_app(app)
    app.extensions['finance_store'] = FinanceStore(db)
    app.register_blueprint(api)
    register_commands(app)
    with app.app_context():
        db.create_all()
    return app


# ---------------------- Helpers ----------------------
def _store():
    return current_app.extensions['finance_store']


def _parse_id(raw, kind):
    try:
        return int(raw)
    except ValueError:
        raise StoreError(f'Invalid {kind} ID')


def _json_body():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise StoreError('Request body must be a JSON object')
    return body


def _number(body, field):
    """JSON number from the body as an exact Decimal; anything else is a 400."""
    value = body.get(field)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise StoreError(f'{field.capitalize()} must be a number')
    if isinstance(value, float) and not math.isfinite(value):
        raise StoreError(f'{field.capitalize()} must be a number')
    return Decimal(str(value))


def _rows(schema, rows):
    return jsonify([schema.from_row(row).to_json() for row in rows])


def _created(schema, row):
    return jsonify(schema.from_row(row).to_json()), 201


# ---------------------- Error handling ----------------------
@api.errorhandler(ValidationError)
def handle_validation_error(error):
    return jsonify({'message': describe_validation_error(error)}), 400


@api.errorhandler(StoreError)
def handle_store_error(error):
    return jsonify({'message': error.message}), error.status_code


@api.app_errorhandler(HTTPException)
def handle_http_error(error):
    return jsonify({'message': error.description}), error.code


@api.errorhandler(Exception)
def handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return handle_http_error(error)
    logger.error('request_failed', path=request.path, method=request.method, error=str(error), exc_info=True)
    return jsonify({'message': str(error) or 'Internal server error'}), 500


# ---------------------- Routes: Users ----------------------
@api.route('/user/<user_id>', methods=['GET'])
def get_user(user_id):
    user = _store().get_user(_parse_id(user_id, 'user'))
    if user is None:
        raise NotFoundError('User not found')
    # password hash never leaves the store
    return jsonify(UserRead.from_row(user).to_json())


@api.route('/user/<user_id>/schufa', methods=['GET'])
def get_schufa(user_id):
    user = _store().get_user(_parse_id(user_id, 'user'))
    if user is None:
        raise NotFoundError('User not found')
    return jsonify(schufa_report(user))


# ---------------------- Routes: Transactions ----------------------
@api.route('/transactions/<user_id>', methods=['GET'])
def list_transactions(user_id):
    return _rows(TransactionRead, _store().list_transactions(_parse_id(user_id, 'user')))


@api.route('/transactions', methods=['POST'])
def create_transaction():
    payload = TransactionCreate.model_validate(_json_body())
    transaction = record_transaction(_store(), payload.model_dump())
    return _created(TransactionRead, transaction)


# ---------------------- Routes: Budgets ----------------------
@api.route('/budgets/<user_id>', methods=['GET'])
def list_budgets(user_id):
    return _rows(BudgetRead, _store().list_budgets(_parse_id(user_id, 'user')))


@api.route('/budgets', methods=['POST'])
def create_budget():
    payload = BudgetCreate.model_validate(_json_body())
    store = _store()
    return _created(BudgetRead, create_owned(store, store.create_budget, payload.model_dump()))


# ---------------------- Routes: Savings goals ----------------------
@api.route('/savings-goals/<user_id>', methods=['GET'])
def list_savings_goals(user_id):
    return _rows(SavingsGoalRead, _store().list_savings_goals(_parse_id(user_id, 'user')))


@api.route('/savings-goals', methods=['POST'])
def create_savings_goal():
    payload = SavingsGoalCreate.model_validate(_json_body())
    store = _store()
    return _created(SavingsGoalRead, create_owned(store, store.create_savings_goal, payload.model_dump()))


@api.route('/savings-goals/<goal_id>', methods=['PATCH'])
def contribute_savings_goal(goal_id):
    goal_id = _parse_id(goal_id, 'goal')
    amount = _number(_json_body(), 'amount')
    change = Contribution.model_validate({'amount': amount})
    goal = contribute_to_goal(_store(), goal_id, change.amount)
    if goal is None:
        raise NotFoundError('Savings goal not found')
    return jsonify(SavingsGoalRead.from_row(goal).to_json())


# ---------------------- Routes: Contracts ----------------------
@api.route('/contracts/<user_id>', methods=['GET'])
def list_contracts(user_id):
    return _rows(ContractRead, _store().list_contracts(_parse_id(user_id, 'user')))


@api.route('/contracts/<user_id>/costs', methods=['GET'])
def get_contract_costs(user_id):
    user_id = _parse_id(user_id, 'user')
    return jsonify(dict(contract_costs(_store().list_contracts(user_id)), userId=user_id))


@api.route('/contracts', methods=['POST'])
def create_contract():
    payload = ContractCreate.model_validate(_json_body())
    store = _store()
    return _created(ContractRead, create_owned(store, store.create_contract, payload.model_dump()))


@api.route('/contracts/<contract_id>', methods=['PATCH'])
def update_contract(contract_id):
    contract_id = _parse_id(contract_id, 'contract')
    store = _store()
    if store.get_contract(contract_id) is None:
        raise NotFoundError('Contract not found')
    changes = ContractUpdate.model_validate(_json_body()).changes()
    contract = store.update_contract(contract_id, changes)
    if contract is None:
        raise NotFoundError('Contract not found')
    logger.info('contract_updated', contract_id=contract_id, fields=sorted(changes))
    return jsonify(ContractRead.from_row(contract).to_json())


@api.route('/contracts/<contract_id>', methods=['DELETE'])
def delete_contract(contract_id):
    contract_id = _parse_id(contract_id, 'contract')
    if not _store().delete_contract(contract_id):
        raise NotFoundError('Contract not found')
    logger.info('contract_deleted', contract_id=contract_id)
    return '', 204


@api.route('/contracts/<contract_id>/offers', methods=['GET'])
def get_contract_offers(contract_id):
    contract = _store().get_contract(_parse_id(contract_id, 'contract'))
    if contract is None:
        raise NotFoundError('Contract not found')
    return jsonify({'contractId': contract.id, 'recommendation': find_best_offers(contract)})


# ---------------------- Routes: Crypto holdings ----------------------
@api.route('/crypto-holdings/<user_id>', methods=['GET'])
def list_crypto_holdings(user_id):
    return _rows(CryptoHoldingRead, _store().list_crypto_holdings(_parse_id(user_id, 'user')))


@api.route('/crypto-holdings/<user_id>/portfolio', methods=['GET'])
def get_portfolio(user_id):
    user_id = _parse_id(user_id, 'user')
    holdings = _store().list_crypto_holdings(user_id)
    total_value = sum((h.value for h in holdings), Decimal('0'))
    total_invested = sum((h.invested for h in holdings), Decimal('0'))
    profit_loss = total_value - total_invested
    percentage = profit_loss / total_invested * 100 if total_invested > 0 else Decimal('0')
    return jsonify({
        'userId': user_id,
        'totalValue': f'{total_value.quantize(CENT)}',
        'totalInvested': f'{total_invested.quantize(CENT)}',
        'profitLoss': f'{profit_loss.quantize(CENT)}',
        'profitLossPercentage': float(percentage.quantize(CENT)),
        'holdings': [CryptoHoldingRead.from_row(h).to_json() for h in holdings],
    })


@api.route('/crypto-holdings', methods=['POST'])
def create_crypto_holding():
    payload = CryptoHoldingCreate.model_validate(_json_body())
    store = _store()
    return _created(CryptoHoldingRead, create_owned(store, store.create_crypto_holding, payload.model_dump()))


@api.route('/crypto-holdings/<holding_id>', methods=['PATCH'])
def refresh_crypto_holding(holding_id):
    holding_id = _parse_id(holding_id, 'holding')
    price = _number(_json_body(), 'price')
    refresh = PriceRefresh.model_validate({'price': price})
    holding = refresh_crypto_price(_store(), holding_id, refresh.price)
    if holding is None:
        raise NotFoundError('Crypto holding not found')
    return jsonify(CryptoHoldingRead.from_row(holding).to_json())


@api.route('/crypto-holdings/<holding_id>', methods=['DELETE'])
def delete_crypto_holding(holding_id):
    holding_id = _parse_id(holding_id, 'holding')
    if not _store().delete_crypto_holding(holding_id):
        raise NotFoundError('Crypto holding not found')
    logger.info('crypto_holding_deleted', holding_id=holding_id)
    return '', 204


# ---------------------- Routes: Insights ----------------------
@api.route('/insights/<user_id>', methods=['GET'])
def get_insights(user_id):
    """Spending breakdown, monthly trend, next-month prediction and tips."""
    return jsonify(build_insights(_store(), _parse_id(user_id, 'user')))


# ---------------------- CLI ----------------------
def register_commands(app):
    @app.cli.command('create-user')
    @click.option('--username', required=True)
    @click.option('--password', required=True)
    @click.option('--first-name', required=True)
    @click.option('--last-name', required=True)
    @click.option('--email', required=True)
    @click.option('--balance', default='0')
    @click.option('--schufa-score', type=int, default=None)
    def create_user_command(username, password, first_name, last_name, email, balance, schufa_score):
        """Create a user account."""
        try:
            payload = UserCreate(
                username=username, password=password, first_name=first_name,
                last_name=last_name, email=email, balance=balance, schufa_score=schufa_score,
            )
            user = app.extensions['finance_store'].create_user(payload.model_dump())
        except ValidationError as e:
            raise click.ClickException(describe_validation_error(e))
        except StoreError as e:
            raise click.ClickException(e.message)
        click.echo(f'Created user {user.username} with id {user.id}.')


# ---------------------- Run App ----------------------
if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=int(os.environ.get('PORT', 5000)), debug=True)
