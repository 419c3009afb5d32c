"""Trigger sources asking the sync coordinator for a sync.

Triggers hold no sync state of their own; they only call
:meth:`~FamilyLedger.core.sync.SyncCoordinator.request_sync` and rely on the coordinator
to drop requests arriving while a sync is already running.
"""
import logging
from typing import Optional

from PySide6 import QtCore

from .sync import SyncCoordinator


class MountTrigger(QtCore.QObject):
    """Syncs once per session if the server reports it is not in sync."""

    def __init__(self, coordinator: SyncCoordinator, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.coordinator = coordinator
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    @QtCore.Slot()
    def run(self) -> None:
        """Check the server's sync status and request a sync when it is out of date."""
        if self._done:
            return
        self._done = True

        try:
            remote_status = self.coordinator.get_sync_status()
        except Exception as ex:
            logging.warning(f'Initial sync check failed: {ex}')
            return

        if not remote_status.is_synced:
            logging.info('Server reports unsynced data, starting initial sync.')
            self.coordinator.request_sync()
        else:
            logging.debug('Server data is in sync.')


class FocusTrigger(QtCore.QObject):
    """Requests a sync each time a watched window is activated.

    Args:
        coordinator: The session's sync coordinator.
        enabled: Whether activation events request a sync.
        parent: Owning QObject.
    """

    def __init__(self, coordinator: SyncCoordinator, enabled: bool = True,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.coordinator = coordinator
        self.enabled = enabled
        self._watched: list = []

    def watch(self, obj: QtCore.QObject) -> None:
        """Install the trigger as an event filter on a window."""
        if obj in self._watched:
            return
        obj.installEventFilter(self)
        self._watched.append(obj)

    def unwatch(self, obj: Optional[QtCore.QObject] = None) -> None:
        """Remove the trigger from a window, or from every watched window when obj is None."""
        targets = [obj] if obj is not None else list(self._watched)
        for target in targets:
            if target in self._watched:
                target.removeEventFilter(self)
                self._watched.remove(target)

    def eventFilter(self, obj: QtCore.QObject, event: QtCore.QEvent) -> bool:
        if self.enabled and event.type() == QtCore.QEvent.WindowActivate:
            logging.debug('Window activated, requesting sync.')
            self.coordinator.request_sync()
        return super().eventFilter(obj, event)


class StalenessTrigger(QtCore.QObject):
    """Polls the server's last sync time and requests a sync once it is stale.

    Args:
        coordinator: The session's sync coordinator.
        interval_minutes: Minutes between checks. ``0`` disables polling.
        parent: Owning QObject.
    """

    def __init__(self, coordinator: SyncCoordinator, interval_minutes: int = 5,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.coordinator = coordinator
        self.interval_minutes = interval_minutes

        self.timer = QtCore.QTimer(self)
        self.timer.setSingleShot(False)
        self.timer.setInterval(int(interval_minutes * 60 * 1000))
        self.timer.timeout.connect(self.check)

    def start(self) -> None:
        if not self.interval_minutes:
            logging.debug('Periodic staleness check disabled.')
            return
        self.timer.start()

    def stop(self) -> None:
        self.timer.stop()

    @QtCore.Slot()
    def check(self) -> None:
        if self.coordinator.is_syncing:
            return
        if self.coordinator.check_staleness():
            logging.info('Server data is stale, requesting sync.')
            self.coordinator.request_sync()
