"""
FamilyLedger: desktop client for a shared household expense ledger.

This package provides:

- :mod:`FamilyLedger.core` – Remote adapter, query cache, sync coordinator, trigger sources and session wiring.
- :mod:`FamilyLedger.data` – Data analytics APIs (:func:`FamilyLedger.data.data.get_category_summary`, :func:`FamilyLedger.data.data.get_monthly_trends`) over synchronized expenses.
- :mod:`FamilyLedger.ui` – Application signals, the QApplication subclass and the main window.
- :mod:`FamilyLedger.settings` – Session configuration with schema validation.
- :mod:`FamilyLedger.log` – Logging setup and the in-memory log tank.

Use :func:`FamilyLedger.exec_` to launch the application.
"""

import sys

from PySide6 import QtCore

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('FamilyLedger requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'FamilyLedger: desktop client keeping a family expense ledger in sync with its server.'

from .log import log

log.setup_logging()


def exec_() -> None:
    """Launch the FamilyLedger GUI application and enter its event loop.

    Initializes the QApplication, opens the sync session, shows the main window,
    and starts the Qt event loop.
    """
    from .core.session import Session
    from .ui import app as _app
    from .ui import main
    from .ui.actions import signals

    app = _app.Application(sys.argv)
    session = Session.from_settings()
    window = main.show()
    window.set_store(session.store)
    session.start(window)
    app.aboutToQuit.connect(session.close)

    # Ask components to load their data
    QtCore.QTimer.singleShot(100, signals.initializationRequested)

    sys.exit(app.exec())


if __name__ == '__main__':
    exec_()
