"""Background execution of blocking remote calls.

Provides a worker thread that runs a blocking function off the GUI thread and reports
back through queued signals, plus a helper that waits for such a worker while keeping
the Qt event loop responsive.
"""

import logging
from typing import Any, Callable, Optional

from PySide6 import QtCore

from ..status import status

TOTAL_TIMEOUT: int = 180
#: Milliseconds a closing owner waits for each of its workers.
CLOSE_TIMEOUT_MS: int = 1000


class AsyncWorker(QtCore.QThread):
    """
    Generic worker thread for blocking functions.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the raised exception on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any,
                 parent: Optional[QtCore.QObject] = None, **kwargs: Any) -> None:
        super().__init__(parent)
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        try:
            result = self.func(*self.args, **self.kwargs)
        except Exception as ex:
            logging.debug(f'{getattr(self.func, "__name__", self.func)} raised {type(ex).__name__}: {ex}')
            self.errorOccurred.emit(ex)
            return
        self.resultReady.emit(result)


def detach(worker: QtCore.QThread) -> None:
    """Leave a running worker to finish on its own. Its result is discarded."""
    worker.finished.connect(worker.deleteLater)
    worker.setParent(QtCore.QCoreApplication.instance())


def release(worker: Optional[QtCore.QThread], timeout_ms: int = CLOSE_TIMEOUT_MS) -> bool:
    """Wait up to timeout_ms for a worker, then detach it.

    Returns:
        bool: True if the worker finished in time.
    """
    if worker is None or worker.wait(QtCore.QDeadlineTimer(timeout_ms)):
        return True
    logging.warning(f'Worker still running after {timeout_ms} ms, leaving it to finish detached.')
    detach(worker)
    return False


class _ResultCollector(QtCore.QObject):
    """Receives a worker's outcome on the waiting thread and stops its event loop."""

    def __init__(self, loop: QtCore.QEventLoop) -> None:
        super().__init__()
        self.loop = loop
        self.done = False
        self.data = None
        self.error = None

    @QtCore.Slot(object)
    def on_result(self, data: Any) -> None:
        self.data = data
        self.done = True
        self.loop.quit()

    @QtCore.Slot(object)
    def on_error(self, err: Exception) -> None:
        self.error = err
        self.done = True
        self.loop.quit()


def start_asynchronous(func: Callable[..., Any], *args: Any, total_timeout: int = TOTAL_TIMEOUT,
                       **kwargs: Any) -> Any:
    """
    Run a blocking function on an AsyncWorker and wait for it.

    Spins a local event loop while the worker runs so timers, focus events and
    queued signals keep being delivered.

    Args:
        func: The blocking function to run.
        *args, **kwargs: Arguments passed to func.
        total_timeout (int): Seconds to wait before giving up. ``0`` waits indefinitely.

    Returns:
        The result of the function on success.

    Raises:
        status.RequestTimeoutException: If the operation times out.
        Exception: Whatever the function raised.
    """
    loop: QtCore.QEventLoop = QtCore.QEventLoop()
    collector = _ResultCollector(loop)

    worker: AsyncWorker = AsyncWorker(func, *args, **kwargs)
    worker.resultReady.connect(collector.on_result, QtCore.Qt.QueuedConnection)
    worker.errorOccurred.connect(collector.on_error, QtCore.Qt.QueuedConnection)

    timer: Optional[QtCore.QTimer] = None
    if total_timeout:
        timer = QtCore.QTimer()
        timer.setSingleShot(True)
        timer.setInterval(total_timeout * 1000)
        timer.timeout.connect(loop.quit)
        timer.start()

    worker.start()
    loop.exec()

    if timer:
        timer.stop()

    if not collector.done:
        worker.resultReady.disconnect(collector.on_result)
        worker.errorOccurred.disconnect(collector.on_error)
        detach(worker)
        raise status.RequestTimeoutException(f'{getattr(func, "__name__", func)} exceeded {total_timeout}s.')

    worker.wait()
    if collector.error is not None:
        raise collector.error
    return collector.data
