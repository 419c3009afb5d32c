"""Remote source adapter for the FamilyLedger server.

Defines the contract the sync machinery consumes (:class:`RemoteSource`), the value
objects it returns, and :class:`HttpRemoteSource`, a JSON-over-HTTP implementation
built on :mod:`requests`.

Failures are raised as :mod:`FamilyLedger.status.status` exceptions tagged with an
:class:`~FamilyLedger.status.status.ErrorKind` so callers can tell retryable errors
from fatal ones without inspecting message text.
"""

import abc
import datetime
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from ..status import status

DEFAULT_TIMEOUT: int = 30

SYNC_FORCE_ENDPOINT = '/api/sync/force'
SYNC_STATUS_ENDPOINT = '/api/sync/status'
SYNC_CHANGES_ENDPOINT = '/api/sync/changes'
SYNC_STATS_ENDPOINT = '/api/sync/stats'
EXPENSES_ENDPOINT = '/api/expenses'
STATS_ENDPOINT = '/api/stats'
FAMILY_MEMBERS_ENDPOINT = '/api/family/members'
CHAT_SESSIONS_ENDPOINT = '/api/chat/sessions'
FAMILY_INVITE_ENDPOINT = '/api/family/invite'


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """Parse an ISO 8601 timestamp into a timezone-aware UTC datetime.

    Args:
        value: An ISO string (a trailing ``Z`` is accepted), a datetime, or None.

    Returns:
        The parsed datetime, or None when value is empty or unparseable.
    """
    if not value:
        return None
    if isinstance(value, datetime.datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.datetime.fromisoformat(text)
        except ValueError:
            logging.warning(f'Could not parse timestamp "{value}".')
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


@dataclass(frozen=True)
class ForceSyncResult:
    """Outcome of a server-side reconciliation."""
    success: bool
    message: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ForceSyncResult':
        return cls(success=bool(data.get('success', False)), message=data.get('message'))


@dataclass(frozen=True)
class RemoteSyncStatus:
    """Point-in-time snapshot of the server's view of freshness."""
    is_synced: bool
    last_expense_sync: Optional[datetime.datetime] = None
    has_changes: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RemoteSyncStatus':
        """Build a status from the server payload.

        ``lastExpenseSync`` is preferred, ``lastSync`` is accepted in its place.
        """
        last = data.get('lastExpenseSync') or data.get('lastSync')
        return cls(
            is_synced=bool(data.get('isSynced', False)),
            last_expense_sync=parse_timestamp(last),
            has_changes=bool(data.get('hasChanges', False)),
        )


class RemoteSource(abc.ABC):
    """Operations the client needs from the server.

    All methods block and may raise; the sync coordinator runs them off the GUI thread.
    """

    @abc.abstractmethod
    def force_sync(self) -> ForceSyncResult:
        """Ask the server to reconcile its state."""

    @abc.abstractmethod
    def get_sync_status(self) -> RemoteSyncStatus:
        """Return the server's current sync status."""

    @abc.abstractmethod
    def get_expenses(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return the family's expenses, newest first."""

    @abc.abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Return aggregate expense statistics."""

    @abc.abstractmethod
    def get_family_members(self) -> List[Dict[str, Any]]:
        """Return the family roster."""

    @abc.abstractmethod
    def get_chat_sessions(self) -> List[Dict[str, Any]]:
        """Return the user's chat sessions."""

    @abc.abstractmethod
    def get_chat_history(self, session_id: str) -> List[Dict[str, Any]]:
        """Return the messages of a chat session."""

    @abc.abstractmethod
    def create_expense(self, description: str, amount: float, category: Optional[str] = None) -> Dict[str, Any]:
        """Record a new expense."""

    @abc.abstractmethod
    def create_chat_session(self, title: Optional[str] = None) -> Dict[str, Any]:
        """Open a new chat session."""

    @abc.abstractmethod
    def send_chat_message(self, session_id: str, message: str) -> Dict[str, Any]:
        """Post a message to a chat session and return the server's reply."""

    @abc.abstractmethod
    def invite_family_member(self, email: str, full_name: str, role: str) -> Dict[str, Any]:
        """Invite someone into the family."""

    @abc.abstractmethod
    def update_family_member(self, member_id: str, email: str, full_name: str, role: str) -> Dict[str, Any]:
        """Change a family member's details or role."""

    @abc.abstractmethod
    def delete_family_member(self, member_id: str) -> Dict[str, Any]:
        """Remove a member from the family."""


class HttpRemoteSource(RemoteSource):
    """RemoteSource talking JSON to the FamilyLedger server.

    Args:
        base_url: Server root, e.g. ``http://localhost:5000``.
        token_provider: Callable returning the bearer token, or None when signed out.
        timeout: Per-request timeout in seconds.
        session: Optional preconfigured :class:`requests.Session`.
    """

    def __init__(self, base_url: str, token_provider: Optional[Callable[[], Optional[str]]] = None,
                 timeout: int = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None) -> None:
        if not base_url:
            raise status.ServerUrlNotConfiguredException
        self.base_url = base_url.rstrip('/')
        self.token_provider = token_provider
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers['Authorization'] = f'Bearer {token}'
        return headers

    def request_json(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None,
                     payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send a request and decode the JSON body.

        Args:
            method: HTTP method.
            endpoint: Path relative to the base url, or an absolute url.
            params: Query parameters.
            payload: JSON body.

        Returns:
            The decoded response body.

        Raises:
            status.NetworkException: If the server cannot be reached.
            status.RequestTimeoutException: If the request times out.
            status.NotAuthenticatedException: On HTTP 401 or 403.
            status.ServiceUnavailableException: On HTTP 429 or 5xx.
            status.RemoteRequestFailedException: On any other non-2xx status.
            status.ResponseInvalidException: If the body is not JSON.
        """
        url = endpoint if endpoint.startswith('http') else f'{self.base_url}{endpoint}'
        logging.debug(f'{method} {url}')
        try:
            response = self.session.request(
                method, url,
                params=params,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.Timeout as ex:
            raise status.RequestTimeoutException(f'{method} {endpoint}: {ex}') from ex
        except requests.ConnectionError as ex:
            raise status.NetworkException(f'{method} {endpoint}: {ex}') from ex

        try:
            data = response.json()
        except ValueError as ex:
            if not response.ok:
                data = {}
            else:
                raise status.ResponseInvalidException(f'{method} {endpoint}: {ex}') from ex

        if not response.ok:
            detail = data.get('error') if isinstance(data, dict) else None
            detail = detail or f'HTTP error! status: {response.status_code}'
            code = response.status_code
            if code in (401, 403):
                raise status.NotAuthenticatedException(detail)
            if code == 429 or code >= 500:
                raise status.ServiceUnavailableException(detail)
            raise status.RemoteRequestFailedException(detail)

        return data

    def force_sync(self) -> ForceSyncResult:
        return ForceSyncResult.from_dict(self.request_json('POST', SYNC_FORCE_ENDPOINT))

    def get_sync_status(self) -> RemoteSyncStatus:
        return RemoteSyncStatus.from_dict(self.request_json('GET', SYNC_STATUS_ENDPOINT))

    def get_sync_changes(self, since: Optional[datetime.datetime] = None) -> Dict[str, Any]:
        """Return expenses and users changed since a point in time."""
        params = {'since': since.isoformat()} if since else None
        return self.request_json('GET', SYNC_CHANGES_ENDPOINT, params=params)

    def get_sync_stats(self) -> Dict[str, Any]:
        """Return record counts and the server's last sync time."""
        return self.request_json('GET', SYNC_STATS_ENDPOINT)

    def get_expenses(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        params = {'limit': limit} if limit else None
        return self.request_json('GET', EXPENSES_ENDPOINT, params=params).get('expenses', [])

    def get_stats(self) -> Dict[str, Any]:
        return self.request_json('GET', STATS_ENDPOINT)

    def get_family_members(self) -> List[Dict[str, Any]]:
        return self.request_json('GET', FAMILY_MEMBERS_ENDPOINT).get('members', [])

    def get_chat_sessions(self) -> List[Dict[str, Any]]:
        return self.request_json('GET', CHAT_SESSIONS_ENDPOINT).get('sessions', [])

    def get_chat_history(self, session_id: str) -> List[Dict[str, Any]]:
        endpoint = f'{CHAT_SESSIONS_ENDPOINT}/{session_id}/messages'
        return self.request_json('GET', endpoint).get('messages', [])

    def create_expense(self, description: str, amount: float, category: Optional[str] = None) -> Dict[str, Any]:
        payload = {'description': description, 'amount': amount}
        if category:
            payload['category'] = category
        return self.request_json('POST', EXPENSES_ENDPOINT, payload=payload)

    def create_chat_session(self, title: Optional[str] = None) -> Dict[str, Any]:
        return self.request_json('POST', CHAT_SESSIONS_ENDPOINT, payload={'title': title})

    def send_chat_message(self, session_id: str, message: str) -> Dict[str, Any]:
        endpoint = f'{CHAT_SESSIONS_ENDPOINT}/{session_id}/messages'
        return self.request_json('POST', endpoint, payload={'message': message})

    def invite_family_member(self, email: str, full_name: str, role: str) -> Dict[str, Any]:
        payload = {'email': email, 'fullName': full_name, 'role': role}
        return self.request_json('POST', FAMILY_INVITE_ENDPOINT, payload=payload)

    def update_family_member(self, member_id: str, email: str, full_name: str, role: str) -> Dict[str, Any]:
        payload = {'email': email, 'fullName': full_name, 'role': role}
        return self.request_json('PUT', f'{FAMILY_MEMBERS_ENDPOINT}/{member_id}', payload=payload)

    def delete_family_member(self, member_id: str) -> Dict[str, Any]:
        return self.request_json('DELETE', f'{FAMILY_MEMBERS_ENDPOINT}/{member_id}')
