"""Summary views fed from the session's query cache."""
import logging
from typing import Optional

from PySide6 import QtCore, QtWidgets

from . import data
from .model import CategorySummaryModel, FrameModel, MemberSummaryModel, TrendModel
from ..core.cache import CacheStore, QueryKey


class SummaryView(QtWidgets.QTabWidget):
    """Tabs with category, member and trend summaries of all cached expenses.

    The view follows the ``expenses:all`` cache entry: every time a query or a sync
    refreshes it, the summaries are rebuilt.
    """

    def __init__(self, parent: Optional[QtWidgets.QWidget] = None) -> None:
        super().__init__(parent=parent)
        self.setObjectName('FamilyLedgerSummaryView')
        self.store: Optional[CacheStore] = None

        self.category_model = CategorySummaryModel(parent=self)
        self.member_model = MemberSummaryModel(parent=self)
        self.trend_model = TrendModel(parent=self)

        self._add_tab(self.category_model, 'Categories')
        self._add_tab(self.member_model, 'Members')
        self._add_tab(self.trend_model, 'Trends')

    @property
    def models(self):
        return self.category_model, self.member_model, self.trend_model

    def _add_tab(self, model: FrameModel, title: str) -> None:
        view = QtWidgets.QTableView(self)
        view.setModel(model)
        view.setSelectionBehavior(QtWidgets.QAbstractItemView.SelectRows)
        view.setEditTriggers(QtWidgets.QAbstractItemView.NoEditTriggers)
        view.verticalHeader().setVisible(False)
        view.horizontalHeader().setStretchLastSection(True)
        self.addTab(view, title)

    def set_store(self, store: CacheStore) -> None:
        """Follow a cache store, loading all expenses if they are not cached yet."""
        if self.store is not None:
            self.store.entryUpdated.disconnect(self.on_entry_updated)
        self.store = store
        store.entryUpdated.connect(self.on_entry_updated)

        if store.entry(QueryKey.AllExpenses).has_value:
            self.refresh()
        else:
            store.query(QueryKey.AllExpenses)

    @QtCore.Slot(str)
    def on_entry_updated(self, key: str) -> None:
        if key == QueryKey.AllExpenses:
            self.refresh()

    def refresh(self) -> None:
        if self.store is None:
            return
        df = data.expenses_to_frame(self.store.value(QueryKey.AllExpenses))
        logging.debug(f'Rebuilding expense summaries from {len(df)} expenses.')
        for model in self.models:
            model.init_data(df)
