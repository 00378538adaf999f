"""
Cached queries about the packages installed in a project.

Listing installed packages is slow compared to how often the answer is
needed (once per list row and repaint in a package browser), so
`InstalledPackageCache` keeps the last listing for a few seconds and
answers every query from that single snapshot.
"""

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from logging import getLogger

from upm_utils.base_qt_package_installer import (
    AbstractPackageClient,
    InstalledPackage,
    PackageSource,
)
from upm_utils.package_database import PackageCatalog, PackageInfo

# Seconds a listing of installed packages is trusted
CACHE_DURATION = 5.0

PROJECT_SOURCES = frozenset(
    {
        PackageSource.REGISTRY,
        PackageSource.GIT,
        PackageSource.LOCAL,
        PackageSource.EMBEDDED,
    }
)
DEVELOPMENT_SOURCES = frozenset(
    {PackageSource.LOCAL, PackageSource.EMBEDDED, PackageSource.GIT}
)

log = getLogger(__name__)


@dataclass(frozen=True)
class InstalledPackageSnapshot:
    entries: tuple[InstalledPackage, ...]
    captured_at: float

    def find(self, package_id: str) -> InstalledPackage | None:
        if not package_id:
            return None
        wanted = package_id.casefold()
        return next(
            (p for p in self.entries if p.id.casefold() == wanted), None
        )

    def ids(self) -> set[str]:
        return {p.id.casefold() for p in self.entries}


class InstalledPackageCache:
    """Time-bounded cache over the installed packages of a project.

    Parameters
    ----------
    client : AbstractPackageClient
        Client queried for the full listing when the cache is stale.
    ttl : float, optional
        Seconds a snapshot stays valid, by default 5.
    clock : Callable[[], float], optional
        Monotonic time source, by default `time.monotonic`.
    """

    def __init__(
        self,
        client: AbstractPackageClient,
        ttl: float = CACHE_DURATION,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._ttl = ttl
        self._clock = clock
        self._snapshot: InstalledPackageSnapshot | None = None

    @property
    def ttl(self) -> float:
        return self._ttl

    def snapshot(self) -> InstalledPackageSnapshot:
        """Return the current snapshot, refreshing it first if stale."""
        now = self._clock()
        if (
            self._snapshot is not None
            and now - self._snapshot.captured_at < self._ttl
        ):
            return self._snapshot

        entries = tuple(self._client.list_installed())
        self._snapshot = InstalledPackageSnapshot(entries, now)
        log.debug('Package cache refreshed with %d packages', len(entries))
        return self._snapshot

    def get_installed_packages(self) -> tuple[InstalledPackage, ...]:
        return self.snapshot().entries

    def is_installed(self, package_id: str) -> bool:
        return self.get_full_info(package_id) is not None

    def get_full_info(self, package_id: str) -> InstalledPackage | None:
        if not package_id:
            return None
        return self.snapshot().find(package_id)

    def get_version(self, package_id: str) -> str | None:
        """Installed version of `package_id`, ``None`` if not installed."""
        info = self.get_full_info(package_id)
        return info.version if info is not None else None

    def refresh_cache(self) -> None:
        """Force the next query to list the installed packages again."""
        self._snapshot = None

    def check_many(self, package_ids: Iterable[str]) -> dict[str, bool]:
        """Installation state of several packages at one point in time."""
        installed = self.snapshot().ids()
        return {
            package_id: package_id.casefold() in installed
            for package_id in package_ids
        }

    def get_installable(self, catalog: PackageCatalog) -> list[PackageInfo]:
        installed = self.snapshot().ids()
        return [
            package
            for package in catalog.get_all_packages()
            if package.package_id.casefold() not in installed
        ]

    def get_project_packages(self) -> list[InstalledPackage]:
        """Packages the project depends on, skipping built-in modules."""
        return [
            p
            for p in self.get_installed_packages()
            if p.source in PROJECT_SOURCES
        ]

    def get_non_builtin_packages(self) -> list[InstalledPackage]:
        return [
            p
            for p in self.get_installed_packages()
            if p.source != PackageSource.BUILTIN
        ]

    def has_dependency_conflicts(self, package_id: str) -> bool:
        """Whether a direct dependency of `package_id` is missing.

        Only direct dependencies are checked and versions are ignored.
        """
        snapshot = self.snapshot()
        info = snapshot.find(package_id)
        if info is None:
            return False
        installed = snapshot.ids()
        return any(
            dep.casefold() not in installed for dep in info.dependencies
        )

    def is_development_package(self, package_id: str) -> bool:
        info = self.get_full_info(package_id)
        return info is not None and info.source in DEVELOPMENT_SOURCES

    def describe_package(self, package_id: str) -> str:
        info = self.get_full_info(package_id)
        if info is None:
            text = f"Package '{package_id}' is not installed."
        else:
            text = (
                'Package Info:\n'
                f'  Name: {info.display_name}\n'
                f'  ID: {info.id}\n'
                f'  Version: {info.version}\n'
                f'  Source: {info.source.value}\n'
                f'  Dependencies: {len(info.dependencies)}\n'
                f'  Description: {info.description}'
            )
        log.info(text)
        return text
