"""Table models presenting expense summaries.

Each model holds a :class:`pandas.DataFrame` built by one of the
:mod:`FamilyLedger.data.data` functions and exposes it read-only to Qt views.
"""
import logging
from typing import Any, List, Tuple

import pandas as pd
from PySide6 import QtCore

from . import data

MONEY_COLUMNS = ('total', 'monthly_total', 'loess')
RATIO_COLUMNS = ('weight', 'share')


class FrameModel(QtCore.QAbstractTableModel):
    """Read-only table model over a DataFrame.

    Subclasses list the ``(column, header)`` pairs they show and implement
    :meth:`build`, which derives the displayed frame from the expense frame.
    """
    columns: List[Tuple[str, str]] = []

    def __init__(self, parent: QtCore.QObject | None = None) -> None:
        super().__init__(parent=parent)
        self._df: pd.DataFrame = pd.DataFrame(columns=[c for c, _ in self.columns])

    @property
    def frame(self) -> pd.DataFrame:
        return self._df

    def build(self, expenses: pd.DataFrame) -> pd.DataFrame:
        raise NotImplementedError

    def init_data(self, expenses: pd.DataFrame) -> None:
        """Rebuild the model from an expense frame produced by :func:`data.expenses_to_frame`."""
        self.beginResetModel()
        try:
            self._df = self.build(expenses).reset_index(drop=True)
        finally:
            self.endResetModel()
        logging.debug(f'{self.__class__.__name__}: {len(self._df)} rows.')

    def clear_data(self) -> None:
        self.beginResetModel()
        self._df = pd.DataFrame(columns=[c for c, _ in self.columns])
        self.endResetModel()

    def rowCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:
        if parent.isValid():
            return 0
        return len(self._df)

    def columnCount(self, parent: QtCore.QModelIndex = QtCore.QModelIndex()) -> int:
        if parent.isValid():
            return 0
        return len(self.columns)

    def headerData(self, section: int, orientation: QtCore.Qt.Orientation,
                   role: int = QtCore.Qt.DisplayRole) -> Any:
        if role != QtCore.Qt.DisplayRole or orientation != QtCore.Qt.Horizontal:
            return None
        if 0 <= section < len(self.columns):
            return self.columns[section][1]
        return None

    def data(self, index: QtCore.QModelIndex, role: int = QtCore.Qt.DisplayRole) -> Any:
        if not index.isValid() or not 0 <= index.row() < self.rowCount():
            return None

        column = self.columns[index.column()][0]
        value = self._df.iloc[index.row()][column]

        if role == QtCore.Qt.UserRole:
            return value
        if role == QtCore.Qt.TextAlignmentRole:
            if column in MONEY_COLUMNS or column in RATIO_COLUMNS or column == 'count':
                return int(QtCore.Qt.AlignRight | QtCore.Qt.AlignVCenter)
            return None
        if role != QtCore.Qt.DisplayRole:
            return None

        if column in MONEY_COLUMNS:
            return f'{float(value):,.2f}'
        if column in RATIO_COLUMNS:
            return f'{float(value):.0%}'
        if isinstance(value, pd.Timestamp):
            return value.strftime('%Y-%m')
        return str(value)


class CategorySummaryModel(FrameModel):
    columns = [('category', 'Category'), ('total', 'Total'), ('count', 'Count'), ('weight', 'Weight')]

    def build(self, expenses: pd.DataFrame) -> pd.DataFrame:
        return data.get_category_summary(expenses)


class MemberSummaryModel(FrameModel):
    columns = [('member', 'Member'), ('total', 'Total'), ('count', 'Count'), ('share', 'Share')]

    def build(self, expenses: pd.DataFrame) -> pd.DataFrame:
        return data.get_member_summary(expenses)


class TrendModel(FrameModel):
    """Latest month of each category's trend next to its smoothed value."""
    columns = [('category', 'Category'), ('month', 'Month'), ('monthly_total', 'Spent'), ('loess', 'Trend')]

    def __init__(self, frac: float = 0.5, parent: QtCore.QObject | None = None) -> None:
        self.frac = frac
        super().__init__(parent=parent)

    def build(self, expenses: pd.DataFrame) -> pd.DataFrame:
        trends = data.get_monthly_trends(expenses, frac=self.frac)
        if trends.empty:
            return trends
        latest = trends.sort_values(by='month').groupby('category').tail(1)
        return latest.sort_values(by='monthly_total', ascending=False)
