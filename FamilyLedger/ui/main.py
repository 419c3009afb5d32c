"""Main window and UI entry point for FamilyLedger.

This module defines:
    - show(): initialize and display the main window
    - SyncStatusIndicator: label reflecting the sync coordinator's state, with the
      recent warnings explaining a failed sync in its tooltip
    - MainWindow: host window watched by the focus trigger, showing expense summaries
"""
import logging
from typing import Optional

from PySide6 import QtWidgets, QtCore, QtGui

from ..data.view import SummaryView
from ..log import log
from ..settings.lib import app_name
from ..ui.actions import signals

widget = None


def show():
    global widget

    if widget is None:
        widget = MainWindow()

    widget.show()
    return widget


class SyncStatusIndicator(QtWidgets.QLabel):
    """Shows the sync state and the outcome of the last sync.

    When a sync fails the tooltip lists the newest warnings from the log tank.
    """
    max_tooltip_messages = 5

    def __init__(self, parent=None):
        super().__init__(parent=parent)
        self.setObjectName('FamilyLedgerSyncStatusIndicator')
        self._state = 'idle'
        self._last_ok: Optional[bool] = None

        self._connect_signals()
        self.update_text()

    def _connect_signals(self):
        signals.syncStateChanged.connect(self.set_state)
        signals.syncFinished.connect(self.set_result)

    @QtCore.Slot(str)
    def set_state(self, state: str) -> None:
        self._state = state
        self.update_text()

    @QtCore.Slot(bool)
    def set_result(self, ok: bool) -> None:
        self._last_ok = ok
        self.update_text()

    def update_text(self) -> None:
        if self._state != 'idle':
            text = f'{self._state.capitalize()}...'
        elif self._last_ok is None:
            text = 'Not synced'
        elif self._last_ok:
            text = 'Up to date'
        else:
            text = 'Sync failed'
        self.setText(text)
        self.setToolTip(self.tooltip_text())

    def tooltip_text(self) -> str:
        if self._state != 'idle':
            return 'Synchronizing with the server'
        if self._last_ok is None:
            return 'No sync has run yet'
        if self._last_ok:
            return 'All data is in sync with the server'

        messages = log.recent_messages(logging.WARNING, limit=self.max_tooltip_messages)
        if not messages:
            return 'Sync failed'
        return '\n'.join(['Sync failed:'] + messages)


class MainWindow(QtWidgets.QMainWindow):
    def __init__(self, parent=None):
        super().__init__(parent=parent)
        self.setWindowTitle(app_name)
        self.setObjectName('FamilyLedgerMainWindow')

        self.toolbar: QtWidgets.QToolBar
        self.status_indicator: SyncStatusIndicator
        self.summary_view: SummaryView
        self.sync_action: QtGui.QAction

        self._create_ui()
        self._init_actions()

    def _create_ui(self) -> None:
        central = QtWidgets.QWidget(self)
        QtWidgets.QVBoxLayout(central)
        self.setCentralWidget(central)

        self.summary_view = SummaryView(parent=central)
        central.layout().addWidget(self.summary_view)

        self.toolbar = QtWidgets.QToolBar(self)
        self.toolbar.setMovable(False)
        self.toolbar.setFloatable(False)
        self.addToolBar(self.toolbar)

        self.status_indicator = SyncStatusIndicator(parent=self)
        self.statusBar().addPermanentWidget(self.status_indicator)

    def _init_actions(self) -> None:
        self.sync_action = QtGui.QAction('Sync', self)
        self.sync_action.setShortcut('Ctrl+R')
        self.sync_action.setToolTip('Synchronize with the server')
        self.sync_action.triggered.connect(signals.syncRequested)
        self.toolbar.addAction(self.sync_action)
        logging.debug('Main window actions initialized.')

    def set_store(self, store) -> None:
        """Show summaries of the given session cache."""
        self.summary_view.set_store(store)

    def sizeHint(self):
        return QtCore.QSize(640, 480)
