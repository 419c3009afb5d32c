"""Keyed cache of server query results.

Each named query (expenses, stats, the family roster, chat history, ...) is held in a
:class:`CacheEntry` together with the time it was last fetched and a staleness flag.
Fetchers are blocking callables registered per key; they run on
:class:`~FamilyLedger.core.service.AsyncWorker` threads and their results are applied
on the thread that owns the store, so entries are only ever mutated there.

Invalidation bumps an entry's generation. A fetch that started before the most recent
invalidation of its key is discarded when it lands, so an entry can never be marked
fresh with data that predates the invalidation.
"""
import collections
import datetime
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from PySide6 import QtCore

from .service import CLOSE_TIMEOUT_MS, AsyncWorker, release


class QueryKey(enum.StrEnum):
    """Named queries cached for the session."""
    Expenses = 'expenses'
    AllExpenses = 'expenses:all'
    Stats = 'stats'
    FamilyMembers = 'family-members'
    ChatSessions = 'chat-sessions'
    ChatMessages = 'chat-messages'


#: Keys invalidated after every successful server sync.
SYNC_INVALIDATED_KEYS: Tuple[QueryKey, ...] = (
    QueryKey.Expenses,
    QueryKey.AllExpenses,
    QueryKey.Stats,
    QueryKey.FamilyMembers,
    QueryKey.ChatSessions,
    QueryKey.ChatMessages,
)


def now() -> datetime.datetime:
    """Return the current UTC time."""
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass
class CacheEntry:
    """The cached result of one named query."""
    key: str
    value: Any = None
    fetched_at: Optional[datetime.datetime] = None
    is_stale: bool = True
    error: Optional[Exception] = None
    generation: int = 0

    @property
    def has_value(self) -> bool:
        return self.fetched_at is not None


def _run_fetchers(request_id: Optional[int],
                   fetchers: Dict[str, Tuple[int, Callable[[], Any]]]) -> Tuple[Optional[int], Dict[str, Tuple[int, bool, Any]]]:
    """Call each fetcher, collecting values and errors.

    Runs on a worker thread.

    Returns:
        The request id and a mapping of key to ``(generation, ok, value_or_exception)``.
    """
    results: Dict[str, Tuple[int, bool, Any]] = {}
    for key, (generation, fetcher) in fetchers.items():
        try:
            results[key] = (generation, True, fetcher())
        except Exception as ex:
            results[key] = (generation, False, ex)
    return request_id, results


class CacheStore(QtCore.QObject):
    """Session-scoped store of named query results.

    Signals:
        entryUpdated (str): A key received a fresh value.
        entryInvalidated (str): A key was marked stale.
        refetchFinished (int): A :meth:`refetch_all` request, identified by its id, completed.
    """
    entryUpdated = QtCore.Signal(str)
    entryInvalidated = QtCore.Signal(str)
    refetchFinished = QtCore.Signal(int)

    def __init__(self, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._entries: Dict[str, CacheEntry] = {}
        self._fetchers: Dict[str, Callable[[], Any]] = {}
        # Number of running fetches per key
        self._in_flight: collections.Counter = collections.Counter()
        # Generation each key's most recent fetch was started for
        self._started: Dict[str, int] = {}
        self._workers: List[AsyncWorker] = []
        self._request_id: int = 0
        self._closed: bool = False

    def register(self, key: str, fetcher: Callable[[], Any]) -> None:
        """Register the blocking fetcher that produces a key's value.

        A registered key counts as mounted and takes part in :meth:`refetch_all`.
        """
        logging.debug(f'Registering query "{key}".')
        self._fetchers[str(key)] = fetcher

    @property
    def keys(self) -> List[str]:
        """Keys with a registered fetcher."""
        return list(self._fetchers)

    def entry(self, key: str) -> CacheEntry:
        """Return the entry for a key, creating an empty stale one on first use."""
        key = str(key)
        if key not in self._entries:
            self._entries[key] = CacheEntry(key=key)
        return self._entries[key]

    def entries(self) -> Dict[str, CacheEntry]:
        return dict(self._entries)

    def value(self, key: str) -> Any:
        return self.entry(key).value

    def is_fetching(self, key: str) -> bool:
        return self._in_flight[str(key)] > 0

    def _has_current_fetch(self, key: str) -> bool:
        return self.is_fetching(key) and self._started.get(key) == self.entry(key).generation

    def query(self, key: str) -> Any:
        """Return a key's current value, fetching it in the background if absent or stale.

        A fetch already running for the key is reused unless the key was invalidated
        after it started, since that fetch's result will be discarded.

        Raises:
            KeyError: If no fetcher is registered for the key.
        """
        key = str(key)
        if key not in self._fetchers:
            raise KeyError(f'No query registered for "{key}".')

        entry = self.entry(key)
        if (entry.is_stale or not entry.has_value) and not self._has_current_fetch(key):
            self._start([key], request_id=None)
        return entry.value

    def invalidate(self, keys: Iterable[str]) -> None:
        """Mark keys stale. Values are kept until a refetch replaces them."""
        keys = [str(k) for k in keys]
        for key in keys:
            entry = self.entry(key)
            entry.is_stale = True
            entry.generation += 1
            self.entryInvalidated.emit(entry.key)
        logging.debug(f'Invalidated {", ".join(keys)}.')

    def refetch_all(self) -> int:
        """Fetch every registered query in the background.

        Returns:
            int: Request id, emitted with :attr:`refetchFinished` once every result is applied.
        """
        self._request_id += 1
        request_id = self._request_id
        logging.debug(f'Refetching {len(self._fetchers)} queries (request {request_id}).')
        self._start(list(self._fetchers), request_id=request_id)
        return request_id

    def _start(self, keys: List[str], request_id: Optional[int]) -> None:
        fetchers = {}
        for key in keys:
            fetchers[key] = (self.entry(key).generation, self._fetchers[key])
            self._started[key] = self.entry(key).generation
            self._in_flight[key] += 1

        self._workers = [w for w in self._workers if not w.isFinished()]
        worker = AsyncWorker(_run_fetchers, request_id, fetchers)
        worker.resultReady.connect(self._on_results)
        self._workers.append(worker)
        worker.start()

    @QtCore.Slot(object)
    def _on_results(self, outcome: Tuple[Optional[int], Dict[str, Tuple[int, bool, Any]]]) -> None:
        request_id, results = outcome
        if self._closed:
            return

        for key, (generation, ok, payload) in results.items():
            self._in_flight[key] -= 1
            if self._in_flight[key] <= 0:
                del self._in_flight[key]
            entry = self.entry(key)
            if generation != entry.generation:
                logging.debug(f'Discarding result for "{key}" fetched before its last invalidation.')
                continue
            if not ok:
                logging.warning(f'Failed to fetch "{key}": {payload}')
                entry.error = payload
                continue
            entry.value = payload
            entry.fetched_at = now()
            entry.is_stale = False
            entry.error = None
            self.entryUpdated.emit(key)

        if request_id is not None:
            logging.debug(f'Refetch request {request_id} finished.')
            self.refetchFinished.emit(request_id)

    def close(self, timeout_ms: int = CLOSE_TIMEOUT_MS) -> None:
        """Wait for running fetch workers, detaching any that outlive timeout_ms."""
        self._closed = True
        for worker in self._workers:
            release(worker, timeout_ms)
        self._workers.clear()
