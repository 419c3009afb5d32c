# tests/test_data.py
"""
Tests for FamilyLedger.data.data (expense frames, summaries and monthly trends).

Run:
    python -m unittest tests.test_data
"""
import unittest

import pandas as pd

from FamilyLedger.data import data

EXPENSES = [
    {'id': '1', 'amount': '12.50', 'category': 'Food', 'description': 'Bread',
     'createdAt': '2025-01-05T09:00:00Z', 'userName': 'Anna'},
    {'id': '2', 'amount': '40', 'category': 'Fuel', 'description': 'Petrol',
     'createdAt': '2025-01-20T18:30:00.000Z', 'userName': 'Ben'},
    {'id': '3', 'amount': '7.5', 'category': 'Food', 'description': 'Milk',
     'createdAt': '2025-03-02T08:00:00Z', 'userName': 'Anna'},
    {'id': '4', 'amount': 'n/a', 'category': '', 'description': 'Unknown',
     'createdAt': '2025-04-11T12:00:00Z', 'userName': 'Ben'},
]


class ExpensesToFrameTests(unittest.TestCase):

    def test_empty(self):
        for value in (None, []):
            df = data.expenses_to_frame(value)
            self.assertTrue(df.empty)
            self.assertEqual(list(df.columns), data.EXPENSE_COLUMNS)

    def test_types_and_columns(self):
        with self.assertLogs(level='WARNING'):
            df = data.expenses_to_frame(EXPENSES)

        self.assertEqual(list(df.columns), data.EXPENSE_COLUMNS)
        self.assertEqual(len(df), 4)
        self.assertTrue(pd.api.types.is_datetime64_any_dtype(df['date']))
        self.assertTrue(pd.api.types.is_float_dtype(df['amount']))
        self.assertEqual(df['amount'].tolist(), [12.5, 40.0, 7.5, 0.0])
        self.assertEqual(df['member'].tolist(), ['Anna', 'Ben', 'Anna', 'Ben'])
        self.assertEqual(df.loc[3, 'category'], 'Uncategorized')

    def test_sorted_by_date_and_invalid_dates_dropped(self):
        records = [
            {'id': 'b', 'amount': 1, 'category': 'A', 'createdAt': '2025-02-01T00:00:00Z'},
            {'id': 'a', 'amount': 2, 'category': 'A', 'createdAt': '2025-01-01T00:00:00Z'},
            {'id': 'x', 'amount': 3, 'category': 'A', 'createdAt': 'not a date'},
        ]
        with self.assertLogs(level='WARNING'):
            df = data.expenses_to_frame(records)
        self.assertEqual(df['id'].tolist(), ['a', 'b'])
        self.assertEqual(df['member'].tolist(), ['', ''])


class SummaryTests(unittest.TestCase):

    def setUp(self) -> None:
        with self.assertLogs(level='WARNING'):
            self.df = data.expenses_to_frame(EXPENSES)

    def test_category_summary(self):
        summary = data.get_category_summary(self.df)
        self.assertEqual(list(summary.columns), data.CATEGORY_SUMMARY_COLUMNS)
        self.assertEqual(summary['category'].tolist(), ['Fuel', 'Food', 'Uncategorized'])
        self.assertEqual(summary['total'].tolist(), [40.0, 20.0, 0.0])
        self.assertEqual(summary['count'].tolist(), [1, 2, 1])
        self.assertEqual(summary['weight'].tolist(), [1.0, 0.5, 0.0])

    def test_member_summary(self):
        summary = data.get_member_summary(self.df)
        self.assertEqual(list(summary.columns), data.MEMBER_SUMMARY_COLUMNS)
        self.assertEqual(summary['member'].tolist(), ['Ben', 'Anna'])
        self.assertAlmostEqual(summary['share'].sum(), 1.0)
        self.assertAlmostEqual(summary.loc[0, 'share'], 40.0 / 60.0)

    def test_empty_summaries(self):
        empty = data.expenses_to_frame([])
        self.assertEqual(list(data.get_category_summary(empty).columns), data.CATEGORY_SUMMARY_COLUMNS)
        self.assertEqual(list(data.get_member_summary(empty).columns), data.MEMBER_SUMMARY_COLUMNS)


class MonthlyTrendTests(unittest.TestCase):

    def setUp(self) -> None:
        with self.assertLogs(level='WARNING'):
            self.df = data.expenses_to_frame(EXPENSES)

    def test_months_filled_with_zero(self):
        trends = data.get_monthly_trends(self.df)
        self.assertEqual(list(trends.columns), data.TREND_DATA_COLUMNS)

        food = trends[trends['category'] == 'Food']
        self.assertEqual(len(food), 4)  # January to April
        self.assertEqual(food['monthly_total'].tolist(), [12.5, 0.0, 7.5, 0.0])
        self.assertEqual(
            food['month'].dt.month.tolist(), [1, 2, 3, 4]
        )
        self.assertEqual(len(food['loess']), 4)

    def test_single_category(self):
        trends = data.get_monthly_trends(self.df, category='Fuel')
        self.assertEqual(set(trends['category']), {'Fuel'})
        self.assertEqual(trends['monthly_total'].tolist(), [40.0])
        self.assertEqual(trends['loess'].tolist(), [40.0])

    def test_unknown_category(self):
        self.assertTrue(data.get_monthly_trends(self.df, category='Travel').empty)

    def test_invalid_fraction(self):
        with self.assertRaises(ValueError):
            data.get_monthly_trends(self.df, frac=0)

    def test_empty_frame(self):
        trends = data.get_monthly_trends(data.expenses_to_frame([]))
        self.assertTrue(trends.empty)
        self.assertEqual(list(trends.columns), data.TREND_DATA_COLUMNS)
