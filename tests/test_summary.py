"""
Tests for FamilyLedger.data.model and FamilyLedger.data.view
(summary table models and the view following the cached expenses).

Run:
    python -m unittest tests.test_summary
"""
from PySide6 import QtCore

from FamilyLedger.core.cache import QueryKey
from FamilyLedger.data import data
from FamilyLedger.data.model import CategorySummaryModel, MemberSummaryModel, TrendModel
from FamilyLedger.data.view import SummaryView
from tests.base import BaseTestCase, SyncTestCase, wait_for

EXPENSES = [
    {'id': '1', 'amount': '30', 'category': 'Food', 'createdAt': '2025-01-05T09:00:00Z', 'userName': 'Anna'},
    {'id': '2', 'amount': '10', 'category': 'Fuel', 'createdAt': '2025-02-20T18:30:00Z', 'userName': 'Ben'},
    {'id': '3', 'amount': '20', 'category': 'Food', 'createdAt': '2025-03-02T08:00:00Z', 'userName': 'Anna'},
]


class SummaryModelTests(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.df = data.expenses_to_frame(EXPENSES)

    def display(self, model, row, column):
        return model.data(model.index(row, column), QtCore.Qt.DisplayRole)

    def test_category_model(self):
        model = CategorySummaryModel()
        self.assertEqual(model.rowCount(), 0)
        model.init_data(self.df)

        self.assertEqual(model.rowCount(), 2)
        self.assertEqual(model.columnCount(), 4)
        self.assertEqual(model.headerData(1, QtCore.Qt.Horizontal), 'Total')
        self.assertEqual(self.display(model, 0, 0), 'Food')
        self.assertEqual(self.display(model, 0, 1), '50.00')
        self.assertEqual(self.display(model, 0, 3), '100%')
        self.assertEqual(model.data(model.index(0, 1), QtCore.Qt.UserRole), 50.0)

    def test_member_model(self):
        model = MemberSummaryModel()
        model.init_data(self.df)
        self.assertEqual(self.display(model, 0, 0), 'Anna')
        self.assertEqual(self.display(model, 0, 3), '83%')
        self.assertEqual(self.display(model, 1, 0), 'Ben')

    def test_trend_model_shows_latest_month_per_category(self):
        model = TrendModel()
        model.init_data(self.df)
        self.assertEqual(model.rowCount(), 2)
        rows = {self.display(model, r, 0): self.display(model, r, 1) for r in range(model.rowCount())}
        self.assertEqual(rows, {'Food': '2025-03', 'Fuel': '2025-02'})

    def test_clear_and_empty_frame(self):
        model = CategorySummaryModel()
        model.init_data(self.df)
        model.clear_data()
        self.assertEqual(model.rowCount(), 0)

        model.init_data(data.expenses_to_frame([]))
        self.assertEqual(model.rowCount(), 0)
        self.assertIsNone(model.data(model.index(0, 0)))


class SummaryViewTests(SyncTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.register_all()
        self.view = SummaryView()

    def tearDown(self) -> None:
        self.view.deleteLater()
        super().tearDown()

    def test_set_store_queries_all_expenses(self):
        self.view.set_store(self.store)
        self.assertTrue(wait_for(lambda: self.view.category_model.rowCount() == 1))
        self.assertEqual(self.remote.calls['get_expenses'], 1)
        self.assertEqual(self.view.member_model.frame['total'].tolist(), [150.0])

    def test_follows_cache_updates(self):
        self.view.set_store(self.store)
        self.assertTrue(wait_for(lambda: self.view.category_model.rowCount() == 1))

        self.view.category_model.clear_data()
        self.store.invalidate([QueryKey.AllExpenses])
        self.store.query(QueryKey.AllExpenses)
        self.assertTrue(wait_for(lambda: self.view.category_model.rowCount() == 1))
        self.assertEqual(self.remote.calls['get_expenses'], 2)
        self.assertEqual(self.view.category_model.frame['total'].tolist(), [150.0])

    def test_other_keys_do_not_rebuild(self):
        self.view.set_store(self.store)
        self.assertTrue(wait_for(lambda: self.view.category_model.rowCount() == 1))
        self.view.category_model.clear_data()

        self.store.query(QueryKey.Stats)
        self.assertTrue(wait_for(lambda: self.store.entry(QueryKey.Stats).has_value))
        self.assertEqual(self.view.category_model.rowCount(), 0)
