"""
Smoke tests for UI components of FamilyLedger.
Verifies the main window can be instantiated, its sync action reaches the
application signals, and the status indicator follows the sync state.
"""
from FamilyLedger.ui.actions import signals
from tests.base import BaseTestCase, SignalRecorder, SyncTestCase, wait_for


class TestMainUI(BaseTestCase):
    def test_MainWindow_init(self):
        from FamilyLedger.ui.main import MainWindow
        window = MainWindow(None)
        self.assertIsNotNone(window)
        self.assertEqual(window.windowTitle(), 'FamilyLedger')
        window.deleteLater()

    def test_sync_action_requests_sync(self):
        from FamilyLedger.ui.main import MainWindow
        window = MainWindow(None)
        requested = SignalRecorder()
        signals.syncRequested.connect(requested.record)
        try:
            window.sync_action.trigger()
        finally:
            signals.syncRequested.disconnect(requested.record)
        self.assertEqual(requested.count, 1)
        window.deleteLater()


class TestSyncStatusIndicator(BaseTestCase):
    def test_follows_sync_state(self):
        from FamilyLedger.ui.main import SyncStatusIndicator
        indicator = SyncStatusIndicator(None)
        self.assertEqual(indicator.text(), 'Not synced')

        signals.syncStateChanged.emit('syncing')
        self.assertEqual(indicator.text(), 'Syncing...')

        signals.syncStateChanged.emit('idle')
        signals.syncFinished.emit(True)
        self.assertEqual(indicator.text(), 'Up to date')

        signals.syncFinished.emit(False)
        self.assertEqual(indicator.text(), 'Sync failed')
        indicator.deleteLater()

    def test_failed_sync_tooltip_lists_recent_warnings(self):
        import logging

        from FamilyLedger.log import log
        from FamilyLedger.ui.main import SyncStatusIndicator

        logging.disable(logging.NOTSET)
        log.setup_logging(enable_stream_handler=False, enable_qt_handler=False)
        try:
            indicator = SyncStatusIndicator(None)
            self.assertEqual(indicator.toolTip(), 'No sync has run yet')

            logging.warning('Sync failed after 3 attempt(s) (transient): Network unreachable')
            signals.syncFinished.emit(False)
            tooltip = indicator.toolTip()
            self.assertTrue(tooltip.startswith('Sync failed:'))
            self.assertIn('Network unreachable', tooltip)

            signals.syncFinished.emit(True)
            self.assertNotIn('Network unreachable', indicator.toolTip())
            indicator.deleteLater()
        finally:
            log.setup_logging(enable_stream_handler=True, enable_qt_handler=False)

    def test_failed_sync_tooltip_without_tank(self):
        import logging

        from FamilyLedger.ui.main import SyncStatusIndicator

        handlers = list(logging.getLogger().handlers)
        logging.getLogger().handlers.clear()
        try:
            indicator = SyncStatusIndicator(None)
            signals.syncFinished.emit(False)
            self.assertEqual(indicator.toolTip(), 'Sync failed')
            indicator.deleteLater()
        finally:
            logging.getLogger().handlers[:] = handlers


class TestMainWindowSummaries(SyncTestCase):
    def test_window_shows_summaries_of_store(self):
        from FamilyLedger.ui.main import MainWindow

        self.register_all()
        window = MainWindow(None)
        window.set_store(self.store)
        self.assertTrue(wait_for(lambda: window.summary_view.category_model.rowCount() == 1))
        self.assertEqual(window.summary_view.count(), 3)
        window.deleteLater()
