from decimal import Decimal

from schemas import CENT

# Simulated market data for contract offers, keyed by contract category.
MARKET_OFFERS = {
    'Telekommunikation': [
        {'provider': 'Telekom', 'name': 'MagentaMobil S',
         'description': '5G mobile plan with 10GB data', 'cost': Decimal('19.95'),
         'billing_cycle': 'monthly', 'url': 'https://www.telekom.de'},
        {'provider': 'Vodafone', 'name': 'Red S',
         'description': '5G mobile plan with 12GB data', 'cost': Decimal('17.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.vodafone.de'},
        {'provider': 'o2', 'name': 'o2 Mobile M',
         'description': '5G mobile plan with 25GB data', 'cost': Decimal('16.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.o2online.de'},
        {'provider': '1&1', 'name': 'All-Net-Flat 5G L',
         'description': '5G mobile plan with 40GB data', 'cost': Decimal('19.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.1und1.de'},
        {'provider': 'Vodafone', 'name': 'Red Internet & Phone 100 Cable',
         'description': 'Cable internet up to 100 Mbit/s', 'cost': Decimal('29.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.vodafone.de'},
        {'provider': 'Telekom', 'name': 'MagentaZuhause M',
         'description': 'DSL internet up to 100 Mbit/s', 'cost': Decimal('34.95'),
         'billing_cycle': 'monthly', 'url': 'https://www.telekom.de'},
        {'provider': 'o2', 'name': 'o2 HomeSpot 5G',
         'description': '5G home internet', 'cost': Decimal('24.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.o2online.de'},
    ],
    'Unterhaltung': [
        {'provider': 'Netflix', 'name': 'Standard',
         'description': 'HD streaming on two devices', 'cost': Decimal('13.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.netflix.com'},
        {'provider': 'Disney+', 'name': 'Standard',
         'description': 'HD streaming on two devices', 'cost': Decimal('9.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.disneyplus.com'},
        {'provider': 'Spotify', 'name': 'Familie',
         'description': 'Music streaming for up to six accounts', 'cost': Decimal('14.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.spotify.com'},
        {'provider': 'Amazon', 'name': 'Prime',
         'description': 'Prime Video, music and free shipping', 'cost': Decimal('8.99'),
         'billing_cycle': 'monthly', 'url': 'https://www.amazon.de'},
    ],
    'Versicherung': [
        {'provider': 'HUK-COBURG', 'name': 'Premium Haftpflicht',
         'description': 'Private liability insurance', 'cost': Decimal('52.00'),
         'billing_cycle': 'yearly', 'url': 'https://www.huk.de'},
        {'provider': 'Allianz', 'name': 'Hausrat Komfort',
         'description': 'Household contents insurance', 'cost': Decimal('68.50'),
         'billing_cycle': 'yearly', 'url': 'https://www.allianz.de'},
        {'provider': 'Generali', 'name': 'KFZ-Versicherung Comfort',
         'description': 'Car insurance', 'cost': Decimal('445.00'),
         'billing_cycle': 'yearly', 'url': 'https://www.generali.de'},
    ],
}


def monthly_cost(cost, billing_cycle):
    return cost / 12 if billing_cycle == 'yearly' else cost


def _is_similar(contract, offer):
    name, provider = contract.name.lower(), contract.provider.lower()
    offer_name, offer_provider = offer['name'].lower(), offer['provider'].lower()
    return (offer_name in name or name in offer_name
            or offer_provider in provider or provider in offer_provider)


def _offer_json(offer):
    return {
        'provider': offer['provider'],
        'name': offer['name'],
        'description': offer['description'],
        'cost': f"{offer['cost']:.2f}",
        'billingCycle': offer['billing_cycle'],
        'normalizedCost': f"{offer['normalized_cost']:.2f}",
        'url': offer['url'],
    }


def find_best_offers(contract, market=MARKET_OFFERS):
    """Cheapest market alternative for a contract, or None if it cannot save money."""
    category_offers = market.get(contract.category, [])
    if not category_offers:
        return None

    similar = [o for o in category_offers if _is_similar(contract, o)]
    relevant = similar or category_offers

    current = monthly_cost(contract.cost, contract.billing_cycle)
    ranked = sorted(
        (dict(o, normalized_cost=monthly_cost(o['cost'], o['billing_cycle'])) for o in relevant),
        key=lambda o: o['normalized_cost'],
    )
    best = ranked[0]
    monthly_savings = current - best['normalized_cost']
    if monthly_savings <= 0:
        return None

    return {
        'bestOffer': _offer_json(best),
        'monthlySavings': f'{monthly_savings.quantize(CENT)}',
        'yearlySavings': f'{(monthly_savings * 12).quantize(CENT)}',
        'savingsPercentage': float((monthly_savings / current * 100).quantize(CENT)),
        'alternativeOffers': [_offer_json(o) for o in ranked[1:4]],
    }


def contract_costs(contracts):
    """Monthly and yearly totals over a user's contracts."""
    monthly = sum((monthly_cost(c.cost, c.billing_cycle) for c in contracts), Decimal('0'))
    yearly = sum((c.cost if c.billing_cycle == 'yearly' else c.cost * 12 for c in contracts), Decimal('0'))
    return {
        'monthlyCost': f'{monthly.quantize(CENT)}',
        'yearlyCost': f'{yearly.quantize(CENT)}',
        'count': len(contracts),
    }
