"""Session wiring for the sync machinery.

A :class:`Session` owns everything whose lifetime matches a signed-in session: the
remote adapter, the :class:`~FamilyLedger.core.cache.CacheStore` with its registered
queries, the :class:`~FamilyLedger.core.sync.SyncCoordinator` and the trigger sources.

Example:
    .. code-block:: python

        session = Session.from_settings()
        session.start(window)
        ...
        session.close()
"""
import functools
import logging
from typing import Any, Dict, List, Optional, Tuple

from PySide6 import QtCore

from . import service
from .cache import CacheStore, QueryKey
from .remote import HttpRemoteSource, RemoteSource
from .sync import SyncCoordinator
from .triggers import FocusTrigger, MountTrigger, StalenessTrigger
from ..settings import lib
from ..ui.actions import signals


def _token_provider() -> Optional[str]:
    return lib.settings.get_section('auth').get('token') or None


#: Cached queries each state-changing operation makes out of date.
MUTATION_INVALIDATES: Dict[str, Tuple[QueryKey, ...]] = {
    'create_expense': (QueryKey.Expenses, QueryKey.AllExpenses, QueryKey.Stats),
    'create_chat_session': (QueryKey.ChatSessions,),
    'send_chat_message': (QueryKey.ChatSessions, QueryKey.ChatMessages),
    'invite_family_member': (QueryKey.FamilyMembers,),
    'update_family_member': (QueryKey.FamilyMembers,),
    'delete_family_member': (QueryKey.FamilyMembers,),
}


class Session(QtCore.QObject):
    """Owns the cache, the sync coordinator and the triggers of one session.

    Args:
        remote: Adapter used by fetchers and the coordinator.
        sync_config: Values of the ``sync`` settings section. Missing keys use defaults.
        cache_config: Values of the ``cache`` settings section.
        parent: Owning QObject.

    Signals:
        mutationFinished (int, str, object): A state-changing operation, given by its id
            and name, succeeded. Carries the server's response.
        mutationFailed (int, str, object): A state-changing operation failed. Carries
            the exception.
    """
    mutationFinished = QtCore.Signal(int, str, object)
    mutationFailed = QtCore.Signal(int, str, object)

    def __init__(self, remote: RemoteSource, sync_config: Optional[Dict[str, Any]] = None,
                 cache_config: Optional[Dict[str, Any]] = None,
                 parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        sync_config = sync_config or {}
        cache_config = cache_config or {}

        self.remote = remote
        self.active_chat_session_id: Optional[str] = None
        self._closed = False
        self._mutation_id = 0
        self._mutations: Dict[int, str] = {}
        self._mutation_workers: List[service.AsyncWorker] = []

        self.store = CacheStore(parent=self)
        self._register_queries(cache_config.get('recent_expenses_limit', 50))

        self.coordinator = SyncCoordinator(
            remote,
            self.store,
            max_attempts=sync_config.get('max_attempts', 3),
            retry_delay_ms=sync_config.get('retry_delay_ms', 2000),
            stale_after_minutes=sync_config.get('stale_after_minutes', 30),
            force_sync_timeout=sync_config.get('force_sync_timeout', 0),
            parent=self,
        )

        self.mount_trigger = MountTrigger(self.coordinator, parent=self)
        self.focus_trigger = FocusTrigger(
            self.coordinator, enabled=sync_config.get('sync_on_focus', True), parent=self
        )
        self.staleness_trigger = StalenessTrigger(
            self.coordinator,
            interval_minutes=sync_config.get('staleness_check_interval_minutes', 5),
            parent=self,
        )

        self._connect_signals()

    @classmethod
    def from_settings(cls, parent: Optional[QtCore.QObject] = None) -> 'Session':
        """Build a session talking HTTP to the configured server.

        Raises:
            status.ServerUrlNotConfiguredException: If the server url is empty.
        """
        server = lib.settings.get_section('server')
        remote = HttpRemoteSource(
            server['url'],
            token_provider=_token_provider,
            timeout=server['timeout'],
        )
        return cls(
            remote,
            sync_config=lib.settings.get_section('sync'),
            cache_config=lib.settings.get_section('cache'),
            parent=parent,
        )

    def _register_queries(self, recent_limit: int) -> None:
        self.store.register(QueryKey.Expenses, functools.partial(self.remote.get_expenses, recent_limit))
        self.store.register(QueryKey.AllExpenses, self.remote.get_expenses)
        self.store.register(QueryKey.Stats, self.remote.get_stats)
        self.store.register(QueryKey.FamilyMembers, self.remote.get_family_members)
        self.store.register(QueryKey.ChatSessions, self.remote.get_chat_sessions)
        self.store.register(QueryKey.ChatMessages, self._fetch_chat_messages)

    def _fetch_chat_messages(self) -> List[Dict[str, Any]]:
        session_id = self.active_chat_session_id
        if not session_id:
            return []
        return self.remote.get_chat_history(session_id)

    def _connect_signals(self) -> None:
        signals.syncRequested.connect(self.coordinator.request_sync)
        signals.initializationRequested.connect(self.mount_trigger.run)
        self.coordinator.stateChanged.connect(signals.syncStateChanged)
        self.coordinator.syncFinished.connect(signals.syncFinished)

    def _disconnect_signals(self) -> None:
        signals.syncRequested.disconnect(self.coordinator.request_sync)
        signals.initializationRequested.disconnect(self.mount_trigger.run)
        self.coordinator.stateChanged.disconnect(signals.syncStateChanged)
        self.coordinator.syncFinished.disconnect(signals.syncFinished)

    def set_active_chat_session(self, session_id: Optional[str]) -> None:
        """Select the chat session whose messages the ``chat-messages`` query returns."""
        if session_id == self.active_chat_session_id:
            return
        self.active_chat_session_id = session_id
        self.store.invalidate([QueryKey.ChatMessages])
        self.store.query(QueryKey.ChatMessages)

    def _mutate(self, name: str, *args: Any) -> int:
        """Run a state-changing remote operation in the background.

        On success the cached queries it affects are invalidated and queried again.

        Returns:
            int: The operation id carried by :attr:`mutationFinished` or :attr:`mutationFailed`.

        Raises:
            RuntimeError: If the session is closed.
        """
        if self._closed:
            raise RuntimeError(f'Cannot run {name}, the session is closed.')

        self._mutation_id += 1
        mutation_id = self._mutation_id
        self._mutations[mutation_id] = name

        worker = service.AsyncWorker(self._call_mutation, mutation_id, name, args)
        worker.resultReady.connect(self._on_mutation_done)
        self._mutation_workers = [w for w in self._mutation_workers if not w.isFinished()]
        self._mutation_workers.append(worker)
        logging.debug(f'Starting {name} ({mutation_id}).')
        worker.start()
        return mutation_id

    def _call_mutation(self, mutation_id: int, name: str, args: tuple) -> Tuple[int, Any, Optional[Exception]]:
        # Runs on the worker thread
        try:
            return mutation_id, getattr(self.remote, name)(*args), None
        except Exception as ex:
            return mutation_id, None, ex

    @QtCore.Slot(object)
    def _on_mutation_done(self, outcome: Tuple[int, Any, Optional[Exception]]) -> None:
        mutation_id, result, error = outcome
        name = self._mutations.pop(mutation_id, None)
        if name is None or self._closed:
            return

        if error is not None:
            logging.warning(f'{name} failed: {error}')
            self.mutationFailed.emit(mutation_id, name, error)
            return

        keys = MUTATION_INVALIDATES[name]
        self.store.invalidate(keys)
        for key in keys:
            self.store.query(key)
        logging.info(f'{name} succeeded, refreshing {", ".join(keys)}.')
        self.mutationFinished.emit(mutation_id, name, result)

    def create_expense(self, description: str, amount: float, category: Optional[str] = None) -> int:
        """Record an expense. Refreshes the expense lists and the stats."""
        return self._mutate('create_expense', description, amount, category)

    def create_chat_session(self, title: Optional[str] = None) -> int:
        """Open a chat session. Refreshes the session list."""
        return self._mutate('create_chat_session', title)

    def send_chat_message(self, session_id: str, message: str) -> int:
        """Post a chat message. Refreshes the session list and the active conversation."""
        return self._mutate('send_chat_message', session_id, message)

    def invite_family_member(self, email: str, full_name: str, role: str = 'member') -> int:
        return self._mutate('invite_family_member', email, full_name, role)

    def update_family_member(self, member_id: str, email: str, full_name: str, role: str) -> int:
        return self._mutate('update_family_member', member_id, email, full_name, role)

    def delete_family_member(self, member_id: str) -> int:
        return self._mutate('delete_family_member', member_id)

    def start(self, window: Optional[QtCore.QObject] = None) -> None:
        """Start watching the window for activation and begin periodic staleness checks."""
        if window is not None:
            self.focus_trigger.watch(window)
        self.staleness_trigger.start()
        logging.debug('Session started.')

    def close(self) -> None:
        """Tear the session down. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.staleness_trigger.stop()
        self.focus_trigger.unwatch()
        self._disconnect_signals()
        self.coordinator.close()
        for worker in self._mutation_workers:
            service.release(worker)
        self._mutation_workers.clear()
        self._mutations.clear()
        self.store.close()
        logging.debug('Session closed.')
