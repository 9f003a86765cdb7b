from decimal import Decimal
from types import SimpleNamespace

import pytest
from pydantic import ValidationError

from offers import MARKET_OFFERS, contract_costs, find_best_offers
from schemas import BudgetRead, ContractUpdate, TransactionCreate, describe_validation_error
from schufa import credit_options, schufa_report, score_rating


def contract(**overrides):
    values = dict(name='Handyvertrag', provider='Sparfuchs Mobil', cost=Decimal('29.99'),
                  billing_cycle='monthly', category='Telekommunikation')
    values.update(overrides)
    return SimpleNamespace(**values)


class TestMarketOffers:
    def test_falls_back_to_whole_category(self):
        result = find_best_offers(contract())
        # no name/provider overlap, so the cheapest telecom offer wins
        assert result['bestOffer']['name'] == 'o2 Mobile M'
        assert result['monthlySavings'] == '13.00'
        assert result['yearlySavings'] == '156.00'
        assert len(result['alternativeOffers']) == 3

    def test_prefers_similar_offers(self):
        result = find_best_offers(contract(provider='Telekom', name='MagentaZuhause L', cost=Decimal('44.95')))
        assert result['bestOffer']['provider'] == 'Telekom'
        assert result['bestOffer']['name'] == 'MagentaMobil S'

    def test_yearly_costs_are_normalized(self):
        result = find_best_offers(contract(provider='Allianz', name='Hausrat', cost=Decimal('120.00'),
                                           billing_cycle='yearly', category='Versicherung'))
        assert result['bestOffer']['name'] == 'Hausrat Komfort'
        assert result['monthlySavings'] == '4.29'
        assert result['savingsPercentage'] == 42.92

    def test_no_recommendation_when_already_cheapest(self):
        assert find_best_offers(contract(provider='Amazon', name='Prime', cost=Decimal('5.00'),
                                         category='Unterhaltung')) is None

    def test_unknown_category(self):
        assert find_best_offers(contract(category='Strom')) is None

    def test_market_table_is_not_mutated(self):
        find_best_offers(contract())
        assert all('normalized_cost' not in offer for offer in MARKET_OFFERS['Telekommunikation'])

    def test_contract_costs_empty(self):
        assert contract_costs([]) == {'monthlyCost': '0.00', 'yearlyCost': '0.00', 'count': 0}


class TestSchufa:
    @pytest.mark.parametrize('score,rating', [
        (100, 'excellent'), (97, 'excellent'), (96, 'very good'), (90, 'very good'),
        (80, 'good'), (67, 'satisfactory'), (55, 'sufficient'), (40, 'critical'), (39, 'insufficient'),
    ])
    def test_rating_bands(self, score, rating):
        assert score_rating(score) == rating

    def test_credit_options(self):
        assert credit_options(85)['status'] == 'positive'
        assert credit_options(70)['status'] == 'neutral'
        assert credit_options(60)['status'] == 'warning'
        assert credit_options(10)['status'] == 'negative'

    def test_report_without_score(self):
        report = schufa_report(SimpleNamespace(id=3, schufa_score=None))
        assert report == {'userId': 3, 'score': None, 'rating': None, 'creditOptions': None}


class TestSchemas:
    def test_transaction_accepts_camel_case(self):
        payload = TransactionCreate.model_validate({
            'userId': 1, 'amount': '45.99', 'description': 'x', 'category': 'A', 'type': 'expense',
        })
        assert payload.user_id == 1
        assert payload.amount == Decimal('45.99')
        assert payload.date is None

    def test_validation_message_names_fields(self):
        with pytest.raises(ValidationError) as excinfo:
            TransactionCreate.model_validate({'amount': '1'})
        message = describe_validation_error(excinfo.value)
        assert message.startswith('Validation error: ')
        assert 'userId' in message

    def test_contract_update_only_sent_fields(self):
        update = ContractUpdate.model_validate({'endDate': None, 'autoRenewal': True})
        assert update.changes() == {'end_date': None, 'auto_renewal': True}

    def test_budget_read_renders_money_strings(self):
        row = SimpleNamespace(id=1, user_id=1, category='A', amount=Decimal('300'), period='monthly',
                              spent=Decimal('45.99'))
        assert BudgetRead.from_row(row).to_json() == {
            'id': 1, 'userId': 1, 'category': 'A', 'amount': '300.00', 'period': 'monthly',
            'spent': '45.99', 'remaining': '254.01',
        }


class TestCreateUserCommand:
    def test_creates_user(self, app, store):
        result = app.test_cli_runner().invoke(args=[
            'create-user', '--username', 'erika', '--password', 'secret', '--first-name', 'Erika',
            '--last-name', 'Musterfrau', '--email', 'erika@example.com', '--balance', '100.50',
        ])
        assert result.exit_code == 0, result.output
        assert 'Created user erika' in result.output
        assert store.get_user_by_username('erika').balance == Decimal('100.50')

    def test_duplicate_username_fails(self, app, user):
        result = app.test_cli_runner().invoke(args=[
            'create-user', '--username', 'max', '--password', 'x', '--first-name', 'M',
            '--last-name', 'M', '--email', 'new@example.com',
        ])
        assert result.exit_code != 0
        assert 'already taken' in result.output
