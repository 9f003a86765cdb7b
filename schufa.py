# Score bands, highest first: (lower bound, rating)
RATINGS = [
    (97, 'excellent'),
    (90, 'very good'),
    (80, 'good'),
    (67, 'satisfactory'),
    (55, 'sufficient'),
    (40, 'critical'),
]

# Indicative credit conditions, highest band first: (lower bound, conditions)
CREDIT_OPTIONS = [
    (90, {
        'mortgageRate': '1.2% - 1.5%',
        'consumerCreditRate': '3.5% - 4.5%',
        'creditCardLimit': 'High limits available',
        'leasing': 'Best conditions',
        'status': 'positive',
    }),
    (80, {
        'mortgageRate': '1.5% - 1.8%',
        'consumerCreditRate': '4.5% - 5.5%',
        'creditCardLimit': 'Good limits available',
        'leasing': 'Good conditions',
        'status': 'positive',
    }),
    (67, {
        'mortgageRate': '1.8% - 2.2%',
        'consumerCreditRate': '5.5% - 7.0%',
        'creditCardLimit': 'Average limits',
        'leasing': 'Standard conditions',
        'status': 'neutral',
    }),
    (55, {
        'mortgageRate': '2.2% - 3.0%',
        'consumerCreditRate': '7.0% - 9.0%',
        'creditCardLimit': 'Restricted limits',
        'leasing': 'Increased rates',
        'status': 'warning',
    }),
]

POOR_CREDIT = {
    'mortgageRate': 'Hard to obtain',
    'consumerCreditRate': 'Above 9.0% if at all',
    'creditCardLimit': 'Prepaid or heavily limited only',
    'leasing': 'Rarely available or high collateral required',
    'status': 'negative',
}


def score_rating(score):
    for lower, rating in RATINGS:
        if score >= lower:
            return rating
    return 'insufficient'


def credit_options(score):
    for lower, options in CREDIT_OPTIONS:
        if score >= lower:
            return dict(options)
    return dict(POOR_CREDIT)


def schufa_report(user):
    """Informational credit view for a user; all fields are None without a score."""
    score = user.schufa_score
    if score is None:
        return {'userId': user.id, 'score': None, 'rating': None, 'creditOptions': None}
    return {
        'userId': user.id,
        'score': score,
        'rating': score_rating(score),
        'creditOptions': credit_options(score),
    }
