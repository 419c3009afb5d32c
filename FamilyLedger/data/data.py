"""Data analytics API for synchronized expenses.

This module turns the expense records held in the query cache into typed
:class:`pandas.DataFrame` objects and derives the summaries the charts and the
insight generator consume: totals per category, totals per family member and
smoothed monthly trends.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from statsmodels.nonparametric.smoothers_lowess import lowess

EXPENSE_COLUMNS: List[str] = ['id', 'date', 'amount', 'description', 'category', 'member']
CATEGORY_SUMMARY_COLUMNS: List[str] = ['category', 'total', 'count', 'weight']
MEMBER_SUMMARY_COLUMNS: List[str] = ['member', 'total', 'count', 'share']
TREND_DATA_COLUMNS: List[str] = ['category', 'month', 'monthly_total', 'loess']

#: Server field names accepted for each column, in order of preference.
FIELD_ALIASES: Dict[str, tuple] = {
    'id': ('id', '_id'),
    'date': ('createdAt', 'date'),
    'amount': ('amount',),
    'description': ('description',),
    'category': ('category',),
    'member': ('userName', 'member', 'user'),
}


def _pick(record: Dict[str, Any], aliases: Iterable[str]) -> Any:
    for alias in aliases:
        if alias in record and record[alias] is not None:
            return record[alias]
    return None


def _conform_date_column(df: pd.DataFrame) -> pd.DataFrame:
    """Convert 'date' to timezone-naive UTC datetimes, drop invalid entries, and sort.

    Args:
        df (pd.DataFrame): DataFrame with a 'date' column.

    Returns:
        pd.DataFrame: DataFrame sorted by 'date' with valid datetime entries.
    """
    df['date'] = pd.to_datetime(df['date'], errors='coerce', utc=True, format='ISO8601').dt.tz_localize(None)
    clean_df = df.dropna(subset=['date'])

    if len(df) != len(clean_df):
        logging.warning(
            f'Unparsable dates encountered: Dropped {len(df) - len(clean_df)} rows with invalid date.')

    return clean_df.sort_values(by='date', ascending=True).reset_index(drop=True)


def _conform_amount_column(df: pd.DataFrame) -> pd.DataFrame:
    """Convert 'amount' to floats. Invalid values are logged and replaced with zero."""
    df['amount'] = pd.to_numeric(df['amount'], errors='coerce')

    l = int(df['amount'].isna().sum())
    if l > 0:
        logging.warning(f'{l} rows have invalid amount values.')

    df['amount'] = df['amount'].fillna(0.0).astype(float)
    return df


def _conform_string_columns(df: pd.DataFrame) -> pd.DataFrame:
    for col in 'id', 'description', 'category', 'member':
        df[col] = df[col].fillna('').astype(str)
    df.loc[df['category'] == '', 'category'] = 'Uncategorized'
    return df


def expenses_to_frame(expenses: Optional[Iterable[Dict[str, Any]]]) -> pd.DataFrame:
    """Build a typed DataFrame from server expense records.

    The server sends amounts as strings and dates as ISO 8601 ``createdAt`` values;
    both are converted. Rows with an unparsable date are dropped.

    Args:
        expenses: Expense dicts as returned by the ``expenses`` queries. None is treated as empty.

    Returns:
        pd.DataFrame: Columns ``id``, ``date``, ``amount``, ``description``, ``category``
        and ``member``, sorted by date.
    """
    rows = [
        {column: _pick(record, aliases) for column, aliases in FIELD_ALIASES.items()}
        for record in (expenses or [])
    ]
    if not rows:
        return pd.DataFrame(columns=EXPENSE_COLUMNS)

    df = (
        pd.DataFrame(rows, columns=EXPENSE_COLUMNS)
        .pipe(_conform_date_column)
        .pipe(_conform_amount_column)
        .pipe(_conform_string_columns)
    )
    return df[EXPENSE_COLUMNS]


def _calculate_weights(df: pd.DataFrame, min_weight: float = 0.02) -> pd.DataFrame:
    """Assign each row a weight between 0 and 1 relative to the largest total.

    Non-zero totals get at least ``min_weight`` so small categories stay visible.
    """
    max_val = df['total'].abs().max() if not df.empty else 0

    def weight(row_total: float) -> float:
        if not max_val:
            return 0.0
        w = max(0.0, min(abs(row_total) / max_val, 1.0))
        if row_total != 0:
            w = max(w, min_weight)
        return w

    df['weight'] = df['total'].apply(weight)
    return df


def get_category_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Summarize expenses per category.

    Args:
        df (pd.DataFrame): Frame produced by :func:`expenses_to_frame`.

    Returns:
        pd.DataFrame: Columns ``category``, ``total``, ``count`` and ``weight``, largest total first.
    """
    if df.empty:
        return pd.DataFrame(columns=CATEGORY_SUMMARY_COLUMNS)

    summary = (
        df.groupby('category')['amount']
        .agg(total='sum', count='count')
        .reset_index()
        .sort_values(by='total', ascending=False)
        .reset_index(drop=True)
    )
    summary = _calculate_weights(summary)
    return summary[CATEGORY_SUMMARY_COLUMNS]


def get_member_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Summarize expenses per family member.

    Returns:
        pd.DataFrame: Columns ``member``, ``total``, ``count`` and ``share`` (fraction of
        the overall total), largest total first.
    """
    if df.empty:
        return pd.DataFrame(columns=MEMBER_SUMMARY_COLUMNS)

    summary = (
        df.groupby('member')['amount']
        .agg(total='sum', count='count')
        .reset_index()
        .sort_values(by='total', ascending=False)
        .reset_index(drop=True)
    )
    grand_total = summary['total'].sum()
    summary['share'] = summary['total'] / grand_total if grand_total else 0.0
    return summary[MEMBER_SUMMARY_COLUMNS]


def get_monthly_trends(df: pd.DataFrame, frac: float = 0.5, category: Optional[str] = None) -> pd.DataFrame:
    """Compute monthly spending per category with LOESS smoothing.

    Months without expenses inside the covered range are filled with zero. Series
    shorter than three months are returned unsmoothed.

    Args:
        df (pd.DataFrame): Frame produced by :func:`expenses_to_frame`.
        frac (float): Fraction of data used for each LOESS estimate (0 < frac <= 1).
        category (Optional[str]): Restrict the trend to one category.

    Returns:
        pd.DataFrame: Columns ``category``, ``month``, ``monthly_total`` and ``loess``.
    """
    if not 0 < frac <= 1:
        raise ValueError(f'frac must be in (0, 1], got {frac}.')
    if df.empty:
        return pd.DataFrame(columns=TREND_DATA_COLUMNS)

    df2 = df.copy()
    if category:
        df2 = df2[df2['category'] == category].copy()
        if df2.empty:
            return pd.DataFrame(columns=TREND_DATA_COLUMNS)

    df2['period'] = df2['date'].dt.to_period('M')
    periods = pd.period_range(df2['period'].min(), df2['period'].max(), freq='M')

    cats = df2['category'].unique()
    idx = pd.MultiIndex.from_product([cats, periods], names=['category', 'period'])
    grp = df2.groupby(['category', 'period'])['amount'].sum()
    df_monthly = grp.reindex(idx, fill_value=0).rename('monthly_total').reset_index()

    rows = []
    for cat, sub in df_monthly.groupby('category'):
        vals = sub['monthly_total'].to_numpy(dtype=float)
        m = len(vals)

        if m < 3:
            loess_vals = vals.copy()
        else:
            x = pd.RangeIndex(stop=m).to_numpy(dtype=float)
            # Each local fit needs at least three points
            loess_vals = lowess(vals, x, frac=min(1.0, max(frac, 3.0 / m)), return_sorted=False)
        rows.append(pd.DataFrame({
            'category': cat,
            'period': sub['period'].to_numpy(),
            'monthly_total': vals,
            'loess': loess_vals,
        }))

    df_trends = pd.concat(rows, ignore_index=True)
    df_trends['month'] = pd.PeriodIndex(df_trends['period'], freq='M').to_timestamp()
    return df_trends[TREND_DATA_COLUMNS]
