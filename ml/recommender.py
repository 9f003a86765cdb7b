import pandas as pd
from sklearn.linear_model import LinearRegression

# Read-only analytics over a user's transactions. Amounts are converted to
# float here; results are rounded to cents for display only and never stored.

COLUMNS = ['date', 'amount', 'type', 'category']


def _query_user_df(store, user_id):
    # Build a DataFrame of user's transactions
    rows = store.list_transactions(user_id)
    if not rows:
        return pd.DataFrame(columns=COLUMNS)
    data = [{
        'date': r.date,
        'amount': float(r.amount),
        'type': r.type,
        'category': r.category
    } for r in rows]
    df = pd.DataFrame(data)
    df['date'] = pd.to_datetime(df['date'])
    return df


def _monthly_expenses(df):
    expenses = df[df['type'] == 'expense'].copy()
    if expenses.empty:
        return pd.Series(dtype=float)
    expenses['ym'] = expenses['date'].dt.to_period('M').astype(str)
    return expenses.groupby('ym')['amount'].sum().sort_index()


def category_breakdown(df):
    expenses = df[df['type'] == 'expense']
    if expenses.empty:
        return []
    totals = expenses.groupby('category')['amount'].sum().sort_values(ascending=False)
    return [{'category': c, 'amount': round(float(v), 2)} for c, v in totals.items()]


def monthly_trend(df):
    """Income and expense per month, oldest first."""
    if df.empty:
        return []
    frame = df.copy()
    frame['ym'] = frame['date'].dt.to_period('M').astype(str)
    pivot = frame.pivot_table(index='ym', columns='type', values='amount', aggfunc='sum', fill_value=0)
    return [{
        'month': ym,
        'income': round(float(row.get('income', 0)), 2),
        'expense': round(float(row.get('expense', 0)), 2),
    } for ym, row in pivot.sort_index().iterrows()]


def predict_next_month_expense(df):
    m = _monthly_expenses(df)
    if m.empty:
        return 0.0
    if len(m) < 2:
        # Not enough data to fit
        return round(float(m.iloc[-1]), 2)
    # Turn months into an integer index
    X = [[i] for i in range(1, len(m) + 1)]
    y = m.values
    model = LinearRegression().fit(X, y)
    pred = float(model.predict([[len(m) + 1]])[0])
    return round(max(pred, 0.0), 2)


def generate_recommendations(df, budgets=()):
    recs = []
    if df.empty:
        recs.append('Add at least 2 months of data to get personalized savings insights.')
        return recs
    # Basic ratios
    total_income = df[df['type'] == 'income']['amount'].sum()
    total_expense = df[df['type'] == 'expense']['amount'].sum()
    if total_income > 0:
        savings_rate = max((total_income - total_expense) / total_income, 0)
        recs.append(f'Your overall savings rate is {savings_rate*100:.1f}%. Aim for 20%+ as a baseline.')
    else:
        recs.append('Add income entries to compute your savings rate.')
    # Top 3 spend categories
    for item in category_breakdown(df)[:3]:
        recs.append(f'High spend in "{item["category"]}" category: €{item["amount"]:.0f}. '
                    'Consider setting a monthly cap or finding cheaper alternatives.')
    # Budgets already past their limit
    for budget in budgets:
        if budget.spent > budget.amount:
            recs.append(f'Budget "{budget.category}" is over its limit by €{budget.spent - budget.amount:.2f}.')
    # Volatility check: if last month higher than prior avg
    monthly = _monthly_expenses(df)
    if len(monthly) >= 2:
        last = monthly.iloc[-1]
        prev_avg = monthly.iloc[:-1].mean()
        if last > 1.2 * prev_avg:
            recs.append("Last month's expenses exceeded your previous average by 20%+. Review discretionary categories.")
    # Prediction informed suggestion
    pred = predict_next_month_expense(df)
    if total_income > 0:
        target_save = max(total_income * 0.2, 0)
        recs.append(f'Predicted next month expense: €{pred:.0f}. Set a savings target of at least €{target_save:.0f}.')
    else:
        recs.append(f'Predicted next month expense: €{pred:.0f}. Add income to compute a savings target.')
    return recs


def build_insights(store, user_id):
    df = _query_user_df(store, user_id)
    return {
        'userId': user_id,
        'categoryBreakdown': category_breakdown(df),
        'monthlyTrend': monthly_trend(df),
        'nextMonthExpensePrediction': predict_next_month_expense(df),
        'recommendations': generate_recommendations(df, store.list_budgets(user_id)),
    }
