from contextlib import ExitStack

from qtpy.QtGui import QHideEvent, QShowEvent
from qtpy.QtWidgets import QWidget
from superqt import QElidingLabel

from upm_utils.base_qt_package_installer import InstallerQueue


class InstallerStatusLabel(QElidingLabel):
    """One-line summary of an installer queue and its last event.

    The label only listens to the queue while it is shown.
    """

    def __init__(
        self, installer: InstallerQueue, parent: QWidget | None = None
    ) -> None:
        super().__init__(parent=parent)
        self._installer = installer
        self._subscription: ExitStack | None = None
        self._last_event = ''
        self.refresh()

    @property
    def last_event(self) -> str:
        return self._last_event

    @property
    def is_listening(self) -> bool:
        return self._subscription is not None

    def refresh(self) -> None:
        status = self._installer.get_status()
        if status.is_processing:
            text = f'Installing... ({status.pending_count} queued)'
        else:
            text = f'Queue: {status.pending_count}'
        if self._last_event:
            text = f'{text} | {self._last_event}'
        self.setText(text)

    def showEvent(self, event: QShowEvent) -> None:
        if self._subscription is None:
            with ExitStack() as stack:
                stack.enter_context(
                    self._installer.listen(
                        queued=self._on_package_queued,
                        started=self._on_install_started,
                        installed=self._on_package_installed,
                        failed=self._on_install_failed,
                        completed=self._on_queue_completed,
                    )
                )
                self._subscription = stack.pop_all()
        self.refresh()
        super().showEvent(event)

    def hideEvent(self, event: QHideEvent) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        super().hideEvent(event)

    def _set_last_event(self, text: str) -> None:
        self._last_event = text
        self.refresh()

    def _on_package_queued(self, name: str) -> None:
        self._set_last_event(f'Queued: {name}')

    def _on_install_started(self, name: str) -> None:
        self._set_last_event(f'Installing: {name}')

    def _on_package_installed(self, name: str) -> None:
        self._set_last_event(f'{name} installed')

    def _on_install_failed(self, name: str, error: str) -> None:
        self._set_last_event(f'Failed: {name}')
        self.setToolTip(error)

    def _on_queue_completed(self) -> None:
        self._set_last_event('All packages processed')
