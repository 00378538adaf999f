"""
Commands behind the package menus of a host application.

`PackageManagerActions` ties together the installer queue, the installed
package cache and the catalog. Menu entries call the ``install_*``,
``clear_*`` and ``refresh_*`` methods and use the ``can_*`` methods to
enable or disable themselves. Text reports are returned for the host to
display.
"""

from collections.abc import Callable, Iterable
from configparser import ConfigParser
from logging import getLogger

from qtpy.QtCore import QObject

from upm_utils.base_qt_package_installer import InstallerQueue
from upm_utils.config import load_catalog
from upm_utils.package_database import PackageCatalog, PackageInfo
from upm_utils.package_validator import InstalledPackageCache
from upm_utils.qt_package_installer import UpmInstallerQueue

log = getLogger(__name__)


class PackageManagerActions:
    def __init__(
        self,
        installer: InstallerQueue,
        cache: InstalledPackageCache,
        catalog: PackageCatalog | None = None,
    ) -> None:
        self.installer = installer
        self.cache = cache
        self.catalog = catalog if catalog is not None else PackageCatalog()
        # installed state changes after every install attempt
        self.installer.packageInstalled.connect(self._on_install_finished)
        self.installer.installFailed.connect(self._on_install_finished)

    @classmethod
    def from_configuration(
        cls, config: ConfigParser, parent: QObject | None = None
    ) -> 'PackageManagerActions':
        installer = UpmInstallerQueue.from_configuration(config, parent)
        cache = InstalledPackageCache(
            installer.client, ttl=config.getfloat('general', 'cache_ttl')
        )
        return cls(installer, cache, load_catalog(config))

    def close(self) -> None:
        """Stop reacting to installer events and close the client."""
        self.installer.packageInstalled.disconnect(self._on_install_finished)
        self.installer.installFailed.disconnect(self._on_install_finished)
        self.installer.client.close()

    # -------------------------- Installation ------------------------------
    def install_package(self, key: str) -> bool:
        package = self.catalog.get_package(key)
        if package is None:
            log.error("Package '%s' not found in database", key)
            return False
        return self.installer.enqueue(package.display_name, package.locator)

    def can_install_package(self, key: str) -> bool:
        if self.installer.is_processing:
            return False
        package = self.catalog.get_package(key)
        if package is None:
            return False
        return not self.cache.is_installed(package.package_id)

    def can_install_set(self) -> bool:
        return not self.installer.is_processing

    def install_package_set(
        self,
        packages: Iterable[PackageInfo],
        set_name: str,
        confirm: Callable[[str], bool] | None = None,
    ) -> list[PackageInfo]:
        """Queue the packages of a set that are not installed yet.

        Parameters
        ----------
        packages : Iterable[PackageInfo]
            Packages in the set.
        set_name : str
            Name shown in messages.
        confirm : Callable[[str], bool], optional
            Called with a summary before queueing; returning ``False``
            cancels the installation.

        Returns
        -------
        list[PackageInfo]
            The packages that were queued.
        """
        packages = list(packages)
        state = self.cache.check_many(p.package_id for p in packages)
        missing = [p for p in packages if not state[p.package_id]]

        if not missing:
            log.info("All packages in '%s' are already installed.", set_name)
            return []

        message = f"Install {len(missing)} packages from '{set_name}'?\n\n"
        message += '\n'.join(f'• {p.display_name}' for p in missing)
        if confirm is not None and not confirm(message):
            return []

        self.installer.enqueue_many(
            (p.display_name, p.locator) for p in missing
        )
        return missing

    def install_named_set(
        self, set_name: str, confirm: Callable[[str], bool] | None = None
    ) -> list[PackageInfo]:
        return self.install_package_set(
            self.catalog.get_package_set(set_name), set_name, confirm
        )

    # -------------------------- Utilities ------------------------------
    def status_text(self) -> str:
        status = self.installer.get_status()
        return (
            'Package Manager Status:\n'
            f'Queue: {status.pending_count} packages\n'
            f'Processing: {"Yes" if status.is_processing else "No"}\n'
            f'Current: {status.current_label}'
        )

    def can_clear_queue(self) -> bool:
        return self.installer.pending_count > 0 and (
            not self.installer.is_processing
        )

    def clear_installation_queue(
        self, confirm: Callable[[str], bool] | None = None
    ) -> bool:
        if confirm is not None and not confirm(
            'Are you sure you want to clear the installation queue?'
        ):
            return False
        return self.installer.clear_queue()

    def refresh_package_cache(self) -> None:
        self.cache.refresh_cache()
        log.info('Package cache refreshed')

    def installed_packages_text(self) -> str:
        packages = sorted(
            self.cache.get_project_packages(), key=lambda p: p.display_name
        )
        return 'Installed Packages:\n\n' + '\n'.join(
            f'• {p.display_name} ({p.version})' for p in packages
        )

    def available_packages_text(self) -> str:
        packages = self.cache.get_installable(self.catalog)
        return 'Available Packages:\n\n' + '\n'.join(
            f'• {p.display_name}' for p in packages
        )

    def _on_install_finished(self, *args) -> None:
        self.cache.refresh_cache()
