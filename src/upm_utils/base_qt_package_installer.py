"""Client-agnostic installation logic for the package utilities.

The main object is `InstallerQueue`, a `QObject` with the notion of a
job queue. Queued jobs are `InstallRequest` dataclasses holding a display
name and the locator handed to the package client.

Only one add operation is ever in flight. The current operation is polled
with a `QTimer` until it completes, and the next request is started on a
later turn of the event loop.
"""

import contextlib
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from logging import getLogger
from typing import NamedTuple

from qtpy.QtCore import QObject, QTimer, Signal
from qtpy.QtWidgets import QTextEdit

# Milliseconds between two checks of the in-flight operation
DEFAULT_POLL_INTERVAL = 100

log = getLogger(__name__)


class OperationStatus(str, Enum):
    "Status reported by an add operation"

    IN_PROGRESS = 'in_progress'
    SUCCESS = 'success'
    FAILURE = 'failure'


class PackageSource(str, Enum):
    "Where an installed package comes from, as reported by UPM"

    UNKNOWN = 'unknown'
    BUILTIN = 'builtin'
    REGISTRY = 'registry'
    GIT = 'git'
    LOCAL = 'local'
    EMBEDDED = 'embedded'
    LOCAL_TARBALL = 'local-tarball'

    @classmethod
    def parse(cls, value: str | None) -> 'PackageSource':
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class InstallRequest:
    """A package waiting in the installer queue."""

    name: str
    locator: str


@dataclass(frozen=True)
class AddResult:
    """Data about a successfully added package."""

    display_name: str
    package_id: str
    version: str = ''


@dataclass(frozen=True)
class InstalledPackage:
    """A package registered in the project."""

    id: str
    display_name: str
    version: str
    source: PackageSource = PackageSource.UNKNOWN
    dependencies: tuple[str, ...] = field(default=())
    description: str = ''


class InstallerStatus(NamedTuple):
    pending_count: int
    is_processing: bool
    current_label: str


class AbstractAddOperation:
    """Handle on an add operation started by a package client."""

    # abstract property
    @property
    def is_completed(self) -> bool:
        "Whether the operation finished, successfully or not"
        raise NotImplementedError

    # abstract property
    @property
    def status(self) -> OperationStatus:
        raise NotImplementedError

    # abstract property
    @property
    def result(self) -> AddResult:
        "Only valid when `status` is `OperationStatus.SUCCESS`"
        raise NotImplementedError

    # abstract property
    @property
    def error(self) -> str:
        "Only valid when `status` is `OperationStatus.FAILURE`"
        raise NotImplementedError


class AbstractPackageClient:
    """Abstract base class for package manager clients.

    A client accepts one add request at a time and reports completion
    through the returned operation handle.
    """

    def __init__(self, project_path: str | None = None) -> None:
        self.project_path = project_path

    # abstract method
    def add(self, locator: str) -> AbstractAddOperation:
        """Start adding the package referenced by `locator`.

        May raise synchronously when `locator` is malformed.
        """
        raise NotImplementedError

    # abstract method
    def list_installed(self) -> list[InstalledPackage]:
        "All packages currently registered in the project"
        raise NotImplementedError

    def close(self) -> None:
        """Release resources held by the client."""


class InstallerQueue(QObject):
    """Queue of package installations, processed one at a time."""

    # emitted when a request is accepted into the queue
    packageQueued = Signal(str)

    # emitted right before the client is asked to add a package
    installStarted = Signal(str)

    # emitted with the resolved display name of an installed package
    packageInstalled = Signal(str)

    # emitted with the request name and a reason
    installFailed = Signal(str, str)

    # emitted once the queue drains. Not to be confused with
    # packageInstalled, which is emitted for each individual package.
    queueCompleted = Signal()

    # client used when none is given to the constructor
    PACKAGE_CLIENT_CLASS: type[AbstractPackageClient] = AbstractPackageClient

    def __init__(
        self,
        parent: QObject | None = None,
        client: AbstractPackageClient | None = None,
        project_path: str | None = None,
        poll_interval: int = DEFAULT_POLL_INTERVAL,
    ) -> None:
        super().__init__(parent)
        if client is None:
            client = self.PACKAGE_CLIENT_CLASS(project_path)
        self._client = client
        self._queue: deque[InstallRequest] = deque()
        self._current_request: InstallRequest | None = None
        self._current_operation: AbstractAddOperation | None = None
        self._is_processing = False
        self._next_scheduled = False
        self._output_widget = None

        self._poll_timer = QTimer(self)
        self._poll_timer.setInterval(poll_interval)
        self._poll_timer.timeout.connect(self._on_poll)

    # -------------------------- Public API ------------------------------
    @property
    def client(self) -> AbstractPackageClient:
        return self._client

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    def enqueue(self, name: str, locator: str) -> bool:
        """Add a package to the installer queue.

        Parameters
        ----------
        name : str
            Name used in notifications about this package.
        locator : str
            Package id, ``id@version`` or ``id@url`` passed to the client.

        Returns
        -------
        bool
            ``True`` if the request was queued, ``False`` if it was
            rejected because `name` or `locator` is empty.
        """
        if not name or not locator:
            log.error('Package name and locator cannot be empty')
            return False

        self._queue.append(InstallRequest(name, locator))
        self.packageQueued.emit(name)
        self._log(f'Queued package: {name}')

        if not self._is_processing and not self._next_scheduled:
            self._process_next()
        return True

    def enqueue_many(self, packages: Iterable[tuple[str, str]]) -> int:
        """Queue several ``(name, locator)`` pairs, keeping their order.

        Returns
        -------
        int
            Number of accepted requests.
        """
        return sum(self.enqueue(name, locator) for name, locator in packages)

    def clear_queue(self) -> bool:
        """Drop every pending request.

        The in-flight operation cannot be revoked, so nothing happens
        while the queue is processing.
        """
        if self._is_processing:
            log.warning(
                'Cannot clear queue while processing. '
                'Wait for current installation to complete.'
            )
            return False

        self._queue.clear()
        self._log('Package queue cleared')
        return True

    def get_status(self) -> InstallerStatus:
        if self._current_request is not None:
            label = f'Installing {self._current_request.name}...'
        else:
            label = 'Idle'
        return InstallerStatus(len(self._queue), self._is_processing, label)

    def has_jobs(self) -> bool:
        """True if there are jobs pending or in flight."""
        return bool(self._queue) or self._is_processing

    @contextlib.contextmanager
    def listen(
        self,
        *,
        queued: Callable[[str], None] | None = None,
        started: Callable[[str], None] | None = None,
        installed: Callable[[str], None] | None = None,
        failed: Callable[[str, str], None] | None = None,
        completed: Callable[[], None] | None = None,
    ) -> Iterator['InstallerQueue']:
        """Connect callbacks to the queue signals for the duration of a block.

        Every connection made is released on exit, even when connecting
        a later callback or the body of the block raises.
        """
        pairs = [
            (self.packageQueued, queued),
            (self.installStarted, started),
            (self.packageInstalled, installed),
            (self.installFailed, failed),
            (self.queueCompleted, completed),
        ]
        connected = []
        try:
            for signal, slot in pairs:
                if slot is not None:
                    signal.connect(slot)
                    connected.append((signal, slot))
            yield self
        finally:
            for signal, slot in reversed(connected):
                with contextlib.suppress(RuntimeError, TypeError):
                    signal.disconnect(slot)

    def set_output_widget(self, output_widget: QTextEdit) -> None:
        """Set the output widget for text output."""
        if output_widget:
            self._output_widget = output_widget

    # -------------------------- Private methods ------------------------------
    def _log(self, msg: str) -> None:
        log.debug(msg)
        if self._output_widget:
            self._output_widget.append(msg)

    def _defer(self, callback: Callable[[], None]) -> None:
        QTimer.singleShot(0, callback)

    def _process_next(self) -> None:
        self._next_scheduled = False

        if self._is_processing:
            log.warning('Package installation already in progress')
            return

        if not self._queue:
            self._is_processing = False
            self._log('All packages processed')
            self.queueCompleted.emit()
            return

        self._is_processing = True
        request = self._queue.popleft()
        self._current_request = request
        self._log(f'Installing package: {request.name}')
        self.installStarted.emit(request.name)

        try:
            self._current_operation = self._client.add(request.locator)
        except Exception as e:
            log.error(
                'Failed to start installation for %s: %s', request.name, e
            )
            self.installFailed.emit(request.name, str(e))
            self._complete_current_installation()
            return

        self._poll_timer.start()

    def _on_poll(self) -> None:
        operation = self._current_operation
        request = self._current_request
        if operation is None or request is None:
            return

        installed = None
        failure = None
        try:
            if not operation.is_completed:
                return
            if operation.status == OperationStatus.SUCCESS:
                result = operation.result
                installed = result.display_name or request.name
                self._log(
                    f'Successfully installed: {installed} '
                    f'({result.package_id})'
                )
            else:
                failure = operation.error or 'Unknown error'
                log.error('Failed to install %s: %s', request.name, failure)
        except Exception as e:
            log.exception('Error processing installation result')
            installed = None
            failure = f'Error processing installation result: {e}'
        self._poll_timer.stop()

        try:
            if installed is not None:
                self.packageInstalled.emit(installed)
            else:
                self.installFailed.emit(request.name, failure)
        finally:
            self._complete_current_installation()

    def _complete_current_installation(self) -> None:
        self._poll_timer.stop()
        self._current_operation = None
        self._current_request = None
        self._is_processing = False
        self._next_scheduled = True
        self._defer(self._process_next)
