"""Application-wide Qt signals for FamilyLedger.

This module provides:
    - Signals: custom Qt signals for configuration changes, the session lifecycle
      and sync requests.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for application config, data, and UI events."""
    initializationRequested = QtCore.Signal()

    configSectionChanged = QtCore.Signal(str)  # Section

    # Explicit user action, e.g. a refresh button
    syncRequested = QtCore.Signal()
    syncStateChanged = QtCore.Signal(str)
    syncFinished = QtCore.Signal(bool)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        self.syncFinished.connect(
            lambda ok: logging.debug(f'Sync finished (success={ok}).')
        )


signals = Signals()
