"""
The installation logic for Unity projects on disk.

The main object is `UpmInstallerQueue`, an `InstallerQueue` subclass
bound to `ManifestPackageClient`. The client adds packages by editing the
project's ``Packages/manifest.json`` on a worker thread, which the editor
then resolves, and lists installed packages from
``Packages/packages-lock.json``.
"""

import json
import os
from concurrent.futures import Future, ThreadPoolExecutor
from configparser import ConfigParser
from logging import getLogger
from pathlib import Path
from tempfile import NamedTemporaryFile
from urllib.request import Request, urlopen

from qtpy.QtCore import QObject

from upm_utils.base_qt_package_installer import (
    AbstractAddOperation,
    AbstractPackageClient,
    AddResult,
    InstalledPackage,
    InstallerQueue,
    OperationStatus,
    PackageSource,
)
from upm_utils.utils import (
    find_package_manifest,
    is_url_locator,
    read_json,
    split_locator,
)

DEFAULT_REGISTRY = 'https://packages.unity.com'
# Built-in modules ship with the editor and are pinned to this version
BUILTIN_MODULE_PREFIX = 'com.unity.modules.'
BUILTIN_MODULE_VERSION = '1.0.0'

log = getLogger(__name__)


def fetch_latest_version(package_id: str, registry: str) -> str:
    """Return the ``latest`` dist-tag of `package_id` in an npm registry."""
    url = f'{registry.rstrip("/")}/{package_id}'
    request = Request(url, headers={'Accept': 'application/json'})
    with urlopen(request, timeout=30) as resp:
        data = json.load(resp)
    try:
        return data['dist-tags']['latest']
    except KeyError:
        raise ValueError(
            f"Registry {registry} has no latest version of '{package_id}'"
        ) from None


def _source_from_reference(package_id: str, reference: str) -> PackageSource:
    if reference.startswith('file:'):
        if reference.endswith('.tgz'):
            return PackageSource.LOCAL_TARBALL
        return PackageSource.LOCAL
    if is_url_locator(reference):
        return PackageSource.GIT
    if package_id.startswith(BUILTIN_MODULE_PREFIX):
        return PackageSource.BUILTIN
    return PackageSource.REGISTRY


class ManifestAddOperation(AbstractAddOperation):
    """Add operation backed by a `concurrent.futures.Future`."""

    def __init__(self, future: 'Future[AddResult]') -> None:
        self._future = future

    @property
    def is_completed(self) -> bool:
        return self._future.done()

    @property
    def status(self) -> OperationStatus:
        if not self._future.done():
            return OperationStatus.IN_PROGRESS
        if self._future.exception() is not None:
            return OperationStatus.FAILURE
        return OperationStatus.SUCCESS

    @property
    def result(self) -> AddResult:
        return self._future.result(timeout=0)

    @property
    def error(self) -> str:
        exc = self._future.exception(timeout=0)
        return str(exc) if exc is not None else ''


class ManifestPackageClient(AbstractPackageClient):
    """Package client working on the manifest of a Unity project.

    Parameters
    ----------
    project_path : str, optional
        Root folder of the Unity project, the one containing
        ``Packages/``. Defaults to the current working directory.
    """

    def __init__(self, project_path: str | None = None) -> None:
        super().__init__(project_path)
        self._root = Path(project_path or os.getcwd())
        # a single worker keeps manifest edits serialized
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix='upm-add'
        )

    def close(self) -> None:
        """Stop the worker thread once pending edits are done."""
        self._executor.shutdown(wait=False)

    @property
    def manifest_path(self) -> Path:
        return self._root / 'Packages' / 'manifest.json'

    @property
    def lock_path(self) -> Path:
        return self._root / 'Packages' / 'packages-lock.json'

    def add(self, locator: str) -> ManifestAddOperation:
        package_id, reference = split_locator(locator)
        future = self._executor.submit(
            self._add_dependency, package_id, reference
        )
        return ManifestAddOperation(future)

    def list_installed(self) -> list[InstalledPackage]:
        if self.lock_path.is_file():
            try:
                return self._list_from_lock()
            except (OSError, ValueError, AttributeError):
                log.warning(
                    'Could not read %s, listing from the manifest',
                    self.lock_path,
                )
        if self.manifest_path.is_file():
            return self._list_from_manifest()
        log.warning('No package manifest found in %s', self._root)
        return []

    def registry_for(self, package_id: str) -> str:
        """Registry url serving `package_id`, honoring scoped registries."""
        if not self.manifest_path.is_file():
            return DEFAULT_REGISTRY
        best_scope, registry = '', DEFAULT_REGISTRY
        for entry in read_json(self.manifest_path).get(
            'scopedRegistries', []
        ):
            for scope in entry.get('scopes', []):
                matches = package_id == scope or package_id.startswith(
                    f'{scope}.'
                )
                if matches and len(scope) > len(best_scope):
                    best_scope, registry = scope, entry['url']
        return registry

    # -------------------------- Private methods ------------------------------
    def _add_dependency(
        self, package_id: str, reference: str | None
    ) -> AddResult:
        if not self.manifest_path.is_file():
            raise FileNotFoundError(
                f'No Packages/manifest.json in {self._root}'
            )

        if reference is None:
            if package_id.startswith(BUILTIN_MODULE_PREFIX):
                reference = BUILTIN_MODULE_VERSION
            else:
                reference = fetch_latest_version(
                    package_id, self.registry_for(package_id)
                )

        manifest = read_json(self.manifest_path)
        dependencies = manifest.get('dependencies', {})
        if dependencies.get(package_id) == reference:
            log.info('%s@%s is already in the manifest', package_id, reference)
        dependencies[package_id] = reference
        manifest['dependencies'] = dict(sorted(dependencies.items()))

        self._write_manifest(manifest)

        display_name, _ = self._package_details(package_id)
        return AddResult(
            display_name=display_name,
            package_id=f'{package_id}@{reference}',
            version='' if is_url_locator(reference) else reference,
        )

    def _write_manifest(self, manifest: dict) -> None:
        # readers on other threads must only ever see a complete manifest
        with NamedTemporaryFile(
            'w',
            encoding='utf-8',
            dir=self.manifest_path.parent,
            prefix='.manifest-',
            suffix='.json',
            delete=False,
        ) as f:
            tmp_path = Path(f.name)
            try:
                json.dump(manifest, f, indent=2)
                f.write('\n')
            except BaseException:
                f.close()
                tmp_path.unlink(missing_ok=True)
                raise
        os.replace(tmp_path, self.manifest_path)

    def _package_details(self, package_id: str) -> tuple[str, str]:
        path = find_package_manifest(self._root, package_id)
        if path is None:
            return package_id, ''
        try:
            data = read_json(path)
        except (OSError, ValueError):
            log.warning('Could not read %s', path)
            return package_id, ''
        return data.get('displayName') or package_id, data.get(
            'description', ''
        )

    def _make_package(
        self,
        package_id: str,
        version: str,
        source: PackageSource,
        dependencies: tuple[str, ...] = (),
    ) -> InstalledPackage:
        display_name, description = self._package_details(package_id)
        return InstalledPackage(
            id=package_id,
            display_name=display_name,
            version=version,
            source=source,
            dependencies=dependencies,
            description=description,
        )

    def _list_from_lock(self) -> list[InstalledPackage]:
        packages = []
        for package_id, entry in (
            read_json(self.lock_path).get('dependencies', {}).items()
        ):
            packages.append(
                self._make_package(
                    package_id,
                    entry.get('version', ''),
                    PackageSource.parse(entry.get('source')),
                    tuple(entry.get('dependencies', {})),
                )
            )
        return packages

    def _list_from_manifest(self) -> list[InstalledPackage]:
        packages = {}
        for package_id, reference in (
            read_json(self.manifest_path).get('dependencies', {}).items()
        ):
            packages[package_id] = self._make_package(
                package_id,
                reference,
                _source_from_reference(package_id, reference),
            )

        # packages copied into Packages/ are embedded and need no entry
        for package_json in sorted(
            (self._root / 'Packages').glob('*/package.json')
        ):
            try:
                data = read_json(package_json)
            except (OSError, ValueError):
                log.warning('Could not read %s', package_json)
                continue
            package_id = data.get('name') or package_json.parent.name
            packages[package_id] = self._make_package(
                package_id,
                data.get('version', ''),
                PackageSource.EMBEDDED,
                tuple(data.get('dependencies', {})),
            )
        return list(packages.values())


class UpmInstallerQueue(InstallerQueue):
    PACKAGE_CLIENT_CLASS = ManifestPackageClient

    @classmethod
    def from_configuration(
        cls, config: ConfigParser, parent: QObject | None = None
    ) -> 'UpmInstallerQueue':
        """Build a queue using the settings of `get_configuration`."""
        return cls(
            parent=parent,
            project_path=config.get('project', 'path', fallback='') or None,
            poll_interval=config.getint('general', 'poll_interval'),
        )
