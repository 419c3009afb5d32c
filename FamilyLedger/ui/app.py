"""Application setup utilities and custom QApplication for FamilyLedger.

This module provides:
    - set_model_id: set Windows AppUserModelID for custom window icons on Windows
    - Application: subclass of QApplication configuring application metadata
"""
import ctypes
import sys
import uuid
from typing import Optional, Sequence

from PySide6 import QtCore, QtWidgets

from .. import __version__


def set_model_id() -> None:
    """Set windows model id to add custom window icons on windows.
    https://github.com/cztomczak/cefpython/issues/395
    """
    if QtCore.QSysInfo().productType() in ('windows', 'winrt'):
        hresult = ctypes.windll.shell32.SetCurrentProcessExplicitAppUserModelID(
            f'FamilyLedger-{uuid.uuid4()}'.encode('utf-8')
        )
        if hresult != 0:
            raise RuntimeError(f'SetCurrentProcessExplicitAppUserModelID failed with code {hresult}')


class Application(QtWidgets.QApplication):
    """Custom QApplication setting the application metadata and Windows model ID."""

    def __init__(self, argv: Optional[Sequence[str]] = None) -> None:
        if argv is None:
            argv = sys.argv

        super().__init__(list(argv))
        set_model_id()

        from ..settings import lib
        self.setApplicationName(lib.app_name)
        self.setOrganizationName('')
        self.setApplicationVersion(__version__)
        self.setQuitOnLastWindowClosed(True)
