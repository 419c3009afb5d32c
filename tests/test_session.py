# tests/test_session.py
"""
Tests for FamilyLedger.core.session (query registration, settings wiring and
the application signal bridge).

Run:
    python -m unittest tests.test_session
"""
from PySide6 import QtWidgets

from FamilyLedger.core.cache import QueryKey, SYNC_INVALIDATED_KEYS
from FamilyLedger.core.remote import HttpRemoteSource, RemoteSyncStatus
from FamilyLedger.core.session import Session
from FamilyLedger.settings import lib
from FamilyLedger.status import status
from FamilyLedger.ui.actions import signals
from tests.base import FakeRemote, SignalRecorder, SyncTestCase, spin, wait_for


class SessionTests(SyncTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.session = Session(
            self.remote,
            sync_config={'retry_delay_ms': 50, 'staleness_check_interval_minutes': 0},
            cache_config={'recent_expenses_limit': 2},
        )

    def tearDown(self) -> None:
        self.session.close()
        super().tearDown()

    def test_registers_every_named_query(self):
        self.assertEqual(
            sorted(self.session.store.keys),
            sorted(str(k) for k in SYNC_INVALIDATED_KEYS)
        )

    def test_recent_expenses_use_configured_limit(self):
        self.session.store.query(QueryKey.Expenses)
        self.assertTrue(wait_for(lambda: self.session.store.entry(QueryKey.Expenses).has_value))
        self.assertEqual(len(self.session.store.value(QueryKey.Expenses)), 2)
        self.assertEqual(self.remote.arguments['get_expenses'], [(2,)])

    def test_all_expenses_are_unbounded(self):
        self.session.store.query(QueryKey.AllExpenses)
        self.assertTrue(wait_for(lambda: self.session.store.entry(QueryKey.AllExpenses).has_value))
        self.assertEqual(len(self.session.store.value(QueryKey.AllExpenses)), 5)

    def test_chat_messages_empty_without_active_session(self):
        self.session.store.query(QueryKey.ChatMessages)
        self.assertTrue(wait_for(lambda: self.session.store.entry(QueryKey.ChatMessages).has_value))
        self.assertEqual(self.session.store.value(QueryKey.ChatMessages), [])
        self.assertEqual(self.remote.calls['get_chat_history'], 0)

    def test_active_chat_session_refetches_messages(self):
        self.session.set_active_chat_session('s42')
        self.assertTrue(wait_for(lambda: self.session.store.entry(QueryKey.ChatMessages).has_value))
        self.assertEqual(self.session.store.value(QueryKey.ChatMessages)[0]['sessionId'], 's42')
        self.assertEqual(self.remote.arguments['get_chat_history'], [('s42',)])

    def test_sync_requested_signal_runs_sync(self):
        signals.syncRequested.emit()
        self.assertTrue(wait_for(lambda: self.session.coordinator.last_sync is not None))
        self.assertEqual(self.remote.calls['force_sync'], 1)

    def test_coordinator_signals_forwarded(self):
        states = SignalRecorder()
        finished = SignalRecorder()
        signals.syncStateChanged.connect(states.record)
        signals.syncFinished.connect(finished.record)
        try:
            self.session.coordinator.request_sync()
            self.assertTrue(wait_for(lambda: finished.count == 1))
        finally:
            signals.syncStateChanged.disconnect(states.record)
            signals.syncFinished.disconnect(finished.record)

        self.assertEqual(states.values, ['syncing', 'idle'])
        self.assertEqual(finished.values, [True])

    def test_initialization_runs_mount_trigger(self):
        self.remote.sync_status = RemoteSyncStatus(is_synced=False)
        signals.initializationRequested.emit()
        self.assertTrue(wait_for(lambda: self.session.coordinator.last_sync is not None))
        self.assertTrue(self.session.mount_trigger.done)

    def test_start_watches_window(self):
        window = QtWidgets.QWidget()
        self.session.start(window)
        self.assertIn(window, self.session.focus_trigger._watched)
        self.assertFalse(self.session.staleness_trigger.timer.isActive())

        self.session.close()
        self.assertNotIn(window, self.session.focus_trigger._watched)
        window.deleteLater()

    def test_close_disconnects_application_signals(self):
        self.session.close()
        self.session.close()

        signals.syncRequested.emit()
        spin(0.1)
        self.assertEqual(self.remote.calls['force_sync'], 0)


class SessionFromSettingsTests(SyncTestCase):

    def test_builds_http_remote_from_settings(self):
        lib.settings.set_section('server', {'url': 'http://ledger.test:5000/', 'timeout': 12})
        lib.settings.set_section('auth', {'token': 'abc123'})

        session = Session.from_settings()
        try:
            self.assertIsInstance(session.remote, HttpRemoteSource)
            self.assertEqual(session.remote.base_url, 'http://ledger.test:5000')
            self.assertEqual(session.remote.timeout, 12)
            self.assertEqual(session.remote._headers()['Authorization'], 'Bearer abc123')
            self.assertEqual(session.coordinator.max_attempts, 3)
            self.assertEqual(session.coordinator.retry_delay_ms, 2000)
        finally:
            session.close()

    def test_token_read_on_each_request(self):
        session = Session.from_settings()
        try:
            self.assertNotIn('Authorization', session.remote._headers())
            lib.settings.set_section('auth', {'token': 'later'})
            self.assertEqual(session.remote._headers()['Authorization'], 'Bearer later')
        finally:
            session.close()

    def test_focus_sync_can_be_disabled(self):
        sync = lib.settings.get_section('sync')
        sync['sync_on_focus'] = False
        lib.settings.set_section('sync', sync)

        session = Session.from_settings()
        try:
            self.assertFalse(session.focus_trigger.enabled)
        finally:
            session.close()

    def test_missing_server_url_raises(self):
        lib.settings.set_section('server', {'url': '', 'timeout': 30})
        with self.assertRaises(status.ServerUrlNotConfiguredException):
            Session.from_settings()

    def test_fake_remote_session_defaults(self):
        session = Session(FakeRemote())
        try:
            self.assertEqual(session.coordinator.max_attempts, 3)
            self.assertEqual(session.coordinator.stale_after_minutes, 30)
            self.assertTrue(session.focus_trigger.enabled)
        finally:
            session.close()


class SessionMutationTests(SyncTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.session = Session(self.remote, sync_config={'staleness_check_interval_minutes': 0})
        self.finished = SignalRecorder()
        self.failed = SignalRecorder()
        self.session.mutationFinished.connect(self.finished.record)
        self.session.mutationFailed.connect(self.failed.record)

        self.session.store.refetch_all()
        self.assertTrue(wait_for(
            lambda: all(self.session.store.entry(k).has_value for k in SYNC_INVALIDATED_KEYS)
        ))

    def tearDown(self) -> None:
        self.session.close()
        super().tearDown()

    def assert_refreshed(self, refreshed, untouched) -> None:
        store = self.session.store
        self.assertTrue(wait_for(
            lambda: all(not store.entry(k).is_stale and not store.is_fetching(k) for k in refreshed)
        ))
        for key in refreshed:
            value = store.value(key)
            version = value[0]['version'] if isinstance(value, list) else value['version']
            self.assertEqual(version, 2, key)
        for key in untouched:
            value = store.value(key)
            version = value[0]['version'] if isinstance(value, list) else value['version']
            self.assertEqual(version, 1, key)

    def test_create_expense_refreshes_expenses_and_stats(self):
        mutation_id = self.session.create_expense('Groceries', 42.5, 'Food')
        self.assertTrue(wait_for(lambda: self.finished.count == 1))

        self.assertEqual(self.finished.emissions[0][:2], (mutation_id, 'create_expense'))
        self.assertEqual(self.remote.arguments['create_expense'], [('Groceries', 42.5, 'Food')])
        self.assert_refreshed(
            [QueryKey.Expenses, QueryKey.AllExpenses, QueryKey.Stats],
            [QueryKey.FamilyMembers, QueryKey.ChatSessions],
        )

    def test_member_changes_refresh_family_members(self):
        self.session.invite_family_member('bo@example.com', 'Bo', 'member')
        self.assertTrue(wait_for(lambda: self.finished.count == 1))
        self.assert_refreshed([QueryKey.FamilyMembers], [QueryKey.Stats, QueryKey.Expenses])

        self.session.update_family_member('u1', 'bo@example.com', 'Bo', 'admin')
        self.session.delete_family_member('u2')
        self.assertTrue(wait_for(lambda: self.finished.count == 3))
        self.assertEqual(self.remote.arguments['delete_family_member'], [('u2',)])
        self.assertEqual(
            sorted(name for _, name, _ in self.finished.emissions),
            ['delete_family_member', 'invite_family_member', 'update_family_member']
        )
        self.assertTrue(wait_for(
            lambda: self.session.store.value(QueryKey.FamilyMembers)[0]['version'] == 4
        ))

    def test_chat_changes_refresh_chat_queries(self):
        self.session.create_chat_session('Budget')
        self.assertTrue(wait_for(lambda: self.finished.count == 1))
        self.assertEqual(self.finished.emissions[0][2], {'session': {'id': 's2', 'title': 'Budget'}})
        self.assert_refreshed([QueryKey.ChatSessions], [QueryKey.Stats])

        self.session.send_chat_message('s1', 'How much on food?')
        self.assertTrue(wait_for(lambda: self.finished.count == 2))
        self.assertEqual(self.remote.arguments['send_chat_message'], [('s1', 'How much on food?')])
        self.assertTrue(wait_for(
            lambda: not self.session.store.entry(QueryKey.ChatSessions).is_stale
            and not self.session.store.entry(QueryKey.ChatMessages).is_stale
        ))

    def test_failed_mutation_leaves_cache_alone(self):
        self.remote.failing.add('create_expense')
        invalidated = SignalRecorder()
        self.session.store.entryInvalidated.connect(invalidated.record)

        with self.assertLogs(level='WARNING'):
            mutation_id = self.session.create_expense('Rent', 900.0)
            self.assertTrue(wait_for(lambda: self.failed.count == 1))

        self.assertEqual(self.failed.emissions[0][:2], (mutation_id, 'create_expense'))
        self.assertIsInstance(self.failed.emissions[0][2], status.NetworkException)
        self.assertEqual(invalidated.count, 0)
        self.assertEqual(self.finished.count, 0)

    def test_mutation_after_close_raises(self):
        self.session.close()
        with self.assertRaises(RuntimeError):
            self.session.create_expense('Late', 1.0)
