"""Sync coordinator keeping the session's cached queries consistent with the server.

A sync asks the server to reconcile (:meth:`RemoteSource.force_sync`) and, when that
succeeds, invalidates every named query and refetches all mounted queries so no view
keeps showing pre-sync data.

The coordinator is a small state machine driven by the Qt event loop::

    Idle --request_sync--> Syncing --success--> Idle
                           Syncing --transient failure, attempts left--> RetryScheduled
                           RetryScheduled --retry delay--> Syncing
                           Syncing --permanent failure / attempts exhausted--> Idle

Only one sync runs at a time. Requests arriving while not idle are dropped, not
queued. Failures never reach the caller of :meth:`SyncCoordinator.request_sync`;
they are logged and the coordinator settles back to idle.
"""
import datetime
import enum
import logging
from typing import Any, Optional, Tuple

from PySide6 import QtCore

from . import service
from .cache import CacheStore, SYNC_INVALIDATED_KEYS, now
from .remote import ForceSyncResult, RemoteSource, RemoteSyncStatus
from ..status import status

MAX_ATTEMPTS: int = 3
RETRY_DELAY_MS: int = 2000
STALE_AFTER_MINUTES: int = 30


class SyncState(enum.StrEnum):
    """States of the sync coordinator."""
    Idle = 'idle'
    Syncing = 'syncing'
    RetryScheduled = 'retry scheduled'


class SyncCoordinator(QtCore.QObject):
    """Single-flight orchestration of server syncs and cache refreshes.

    Args:
        remote: Adapter used for the force-sync and status calls.
        store: Cache store whose queries are invalidated and refetched.
        max_attempts: Total force-sync attempts per sync, the first included.
        retry_delay_ms: Fixed delay before a retry.
        stale_after_minutes: Age after which :meth:`check_staleness` reports stale.
        force_sync_timeout: Seconds before a force-sync attempt counts as a transient
            failure. ``0`` waits indefinitely.
        close_timeout_ms: How long :meth:`close` waits for a running attempt before
            leaving it to finish detached.
        parent: Owning QObject.

    Signals:
        stateChanged (str): The new :class:`SyncState`.
        isSyncingChanged (bool): Emitted when the coordinator leaves or returns to idle.
        lastSyncChanged (object): The datetime of the last successful sync.
        syncFinished (bool): A sync resolved, successfully or not.
    """
    stateChanged = QtCore.Signal(str)
    isSyncingChanged = QtCore.Signal(bool)
    lastSyncChanged = QtCore.Signal(object)
    syncFinished = QtCore.Signal(bool)

    def __init__(self, remote: RemoteSource, store: CacheStore,
                 max_attempts: int = MAX_ATTEMPTS,
                 retry_delay_ms: int = RETRY_DELAY_MS,
                 stale_after_minutes: int = STALE_AFTER_MINUTES,
                 force_sync_timeout: int = 0,
                 close_timeout_ms: int = service.CLOSE_TIMEOUT_MS,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.remote = remote
        self.store = store
        self.max_attempts = max(int(max_attempts), 1)
        self.stale_after_minutes = stale_after_minutes
        self.force_sync_timeout = force_sync_timeout
        self.close_timeout_ms = close_timeout_ms

        self._state: SyncState = SyncState.Idle
        self._last_sync: Optional[datetime.datetime] = None
        self._started_at: Optional[datetime.datetime] = None
        self._attempt: int = 0
        # Identifies the force-sync attempt whose result is still wanted
        self._generation: int = 0
        self._refetch_request: Optional[int] = None
        self._worker: Optional[service.AsyncWorker] = None
        self._abandoned: list = []
        self._closed: bool = False

        self._retry_timer = QtCore.QTimer(self)
        self._retry_timer.setSingleShot(True)
        self._retry_timer.setInterval(retry_delay_ms)

        self._timeout_timer = QtCore.QTimer(self)
        self._timeout_timer.setSingleShot(True)

        self._connect_signals()

    def _connect_signals(self) -> None:
        self._retry_timer.timeout.connect(self._on_retry_timeout)
        self._timeout_timer.timeout.connect(self._on_force_sync_timeout)
        self.store.refetchFinished.connect(self._on_refetch_finished)

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        """True from the moment a sync is admitted until it resolves, retries included."""
        return self._state != SyncState.Idle

    @property
    def last_sync(self) -> Optional[datetime.datetime]:
        """Time of the last sync the server confirmed, or None."""
        return self._last_sync

    @property
    def attempt(self) -> int:
        return self._attempt

    @property
    def retry_delay_ms(self) -> int:
        return self._retry_timer.interval()

    def _set_state(self, state: SyncState) -> None:
        if state == self._state:
            return
        was_syncing = self.is_syncing
        logging.debug(f'Sync state: {self._state} -> {state}')
        self._state = state
        self.stateChanged.emit(state.value)
        if was_syncing != self.is_syncing:
            self.isSyncingChanged.emit(self.is_syncing)

    @QtCore.Slot()
    def request_sync(self) -> None:
        """Start a sync unless one is already running.

        Safe to call from any trigger at any time. Never raises.
        """
        if self._closed:
            logging.debug('Sync requested after the coordinator was closed, ignoring.')
            return
        if self._state != SyncState.Idle:
            logging.debug(f'Sync requested while {self._state}, request dropped.')
            return

        # The flag must be up before the remote call starts
        self._set_state(SyncState.Syncing)
        self._attempt = 1
        self._started_at = now()
        logging.info('Starting data sync.')
        self._start_attempt()

    def _start_attempt(self) -> None:
        self._generation += 1
        self._refetch_request = None

        worker = service.AsyncWorker(self._call_force_sync, self._generation)
        worker.resultReady.connect(self._on_force_sync_done)
        if self._worker is not None and not self._worker.isFinished():
            self._abandoned.append(self._worker)
        self._abandoned = [w for w in self._abandoned if not w.isFinished()]
        self._worker = worker

        if self.force_sync_timeout:
            self._timeout_timer.start(self.force_sync_timeout * 1000)
        logging.debug(f'Force-sync attempt {self._attempt}/{self.max_attempts}.')
        worker.start()

    def _call_force_sync(self, generation: int) -> Tuple[int, Optional[ForceSyncResult], Optional[Exception]]:
        # Runs on the worker thread. Errors travel back with the generation they belong to.
        try:
            return generation, self.remote.force_sync(), None
        except Exception as ex:
            return generation, None, ex

    @QtCore.Slot(object)
    def _on_force_sync_done(self, outcome: Tuple[int, Any, Optional[Exception]]) -> None:
        generation, result, error = outcome
        if generation != self._generation or self._state != SyncState.Syncing:
            logging.debug(f'Ignoring force-sync result of superseded attempt {generation}.')
            return
        self._timeout_timer.stop()

        if error is None and not result.success:
            # The server's business flag overrides a successful HTTP exchange
            error = status.SyncRejectedException(result.message or 'Sync failed')

        if error is not None:
            self._handle_failure(error)
            return

        logging.debug('Server reconciled, refreshing cached queries.')
        self.store.invalidate(SYNC_INVALIDATED_KEYS)
        self._refetch_request = self.store.refetch_all()

    @QtCore.Slot(int)
    def _on_refetch_finished(self, request_id: int) -> None:
        if self._refetch_request is None or request_id != self._refetch_request:
            return
        self._refetch_request = None

        self._last_sync = now()
        logging.info('Data sync completed successfully, all queries refreshed.')
        self.lastSyncChanged.emit(self._last_sync)
        self._settle(True)

    @QtCore.Slot()
    def _on_force_sync_timeout(self) -> None:
        if self._state != SyncState.Syncing or self._refetch_request is not None:
            return
        # Drop whatever the hung attempt eventually returns
        self._generation += 1
        self._handle_failure(
            status.RequestTimeoutException(f'Force sync exceeded {self.force_sync_timeout}s.')
        )

    def _handle_failure(self, error: Exception) -> None:
        kind = status.classify_error(error)
        if kind == status.ErrorKind.Transient and self._attempt < self.max_attempts:
            logging.warning(
                f'Sync attempt {self._attempt}/{self.max_attempts} failed: {error}. '
                f'Retrying in {self.retry_delay_ms} ms.'
            )
            self._set_state(SyncState.RetryScheduled)
            self._retry_timer.start()
            return

        logging.warning(f'Sync failed after {self._attempt} attempt(s) ({kind}): {error}')
        self._settle(False)

    @QtCore.Slot()
    def _on_retry_timeout(self) -> None:
        if self._state != SyncState.RetryScheduled:
            return
        self._attempt += 1
        self._set_state(SyncState.Syncing)
        self._start_attempt()

    def _settle(self, success: bool) -> None:
        self._timeout_timer.stop()
        self._set_state(SyncState.Idle)
        self.syncFinished.emit(success)

    def get_sync_status(self) -> RemoteSyncStatus:
        """Return the server's sync status.

        Unlike :meth:`request_sync`, errors propagate to the caller.
        """
        return service.start_asynchronous(self.remote.get_sync_status)

    def check_staleness(self) -> bool:
        """Report whether the server-side data is old enough to warrant a sync.

        Returns:
            bool: True when the server has never synced or its last sync is older than
            ``stale_after_minutes``. False when it is recent, or when the status query
            fails, so a failing check cannot set off a burst of syncs.
        """
        try:
            remote_status = self.get_sync_status()
        except Exception as ex:
            logging.warning(f'Data staleness check failed: {ex}')
            return False

        if remote_status.last_expense_sync is None:
            return True

        elapsed = (now() - remote_status.last_expense_sync).total_seconds() / 60.0
        logging.debug(f'Last expense sync was {elapsed:.1f} minutes ago.')
        return elapsed > self.stale_after_minutes

    def close(self) -> None:
        """End the coordinator's life: stop timers and ignore results still in flight.

        Waits at most ``close_timeout_ms`` per worker so a hung request cannot block
        application shutdown.
        """
        self._closed = True
        self._generation += 1
        self._refetch_request = None
        self._retry_timer.stop()
        self._timeout_timer.stop()
        if self._state != SyncState.Idle:
            self._set_state(SyncState.Idle)
        for worker in [self._worker] + self._abandoned:
            service.release(worker, self.close_timeout_ms)
        self._worker = None
        self._abandoned.clear()
