"""
UI package: application signals, application setup and the main window.

This package provides:

- :mod:`FamilyLedger.ui.actions` – Application-wide Qt signals.
- :mod:`FamilyLedger.ui.app` – QApplication subclass setting application metadata.
- :mod:`FamilyLedger.ui.main` – Main window with the sync action, the sync status indicator and the expense summaries.
"""
