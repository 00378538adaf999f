"""
Catalog of commonly used Unity packages and predefined package sets.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from logging import getLogger

log = getLogger(__name__)


class PackageCategory(str, Enum):
    CORE = 'core'
    RENDERING = 'rendering'
    UI = 'ui'
    AUDIO = 'audio'
    NETWORKING = 'networking'
    SERVICES = 'services'
    TESTING = 'testing'
    UTILITY = 'utility'

    @classmethod
    def parse(cls, value: str) -> 'PackageCategory':
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown package category '{value}'") from None


@dataclass(frozen=True)
class PackageInfo:
    display_name: str
    url: str
    description: str
    category: PackageCategory
    package_id: str

    @property
    def locator(self) -> str:
        """What the package client needs to add this package."""
        if self.url == self.package_id or self.url.startswith(
            f'{self.package_id}@'
        ):
            return self.url
        return f'{self.package_id}@{self.url}'


DEFAULT_PACKAGES: dict[str, PackageInfo] = {
    'UniRx': PackageInfo(
        'UniRx',
        'https://github.com/neuecc/UniRx.git?path=Assets/Plugins/UniRx/Scripts',
        'Reactive Extensions for Unity',
        PackageCategory.UTILITY,
        'com.neuecc.unirx',
    ),
    'UniTask': PackageInfo(
        'UniTask',
        'https://github.com/Cysharp/UniTask.git?path=src/UniTask/Assets/Plugins/UniTask',
        'Efficient async/await integration for Unity',
        PackageCategory.UTILITY,
        'com.cysharp.unitask',
    ),
    'Input System': PackageInfo(
        'Input System',
        'com.unity.inputsystem',
        "Unity's new Input System",
        PackageCategory.CORE,
        'com.unity.inputsystem',
    ),
    'Addressables': PackageInfo(
        'Addressables',
        'com.unity.addressables',
        'Unity Addressables Asset System',
        PackageCategory.CORE,
        'com.unity.addressables',
    ),
    'Cinemachine': PackageInfo(
        'Cinemachine',
        'com.unity.cinemachine',
        'Smart camera system',
        PackageCategory.RENDERING,
        'com.unity.cinemachine',
    ),
    'URP': PackageInfo(
        'Universal Render Pipeline',
        'com.unity.render-pipelines.universal',
        'Universal Render Pipeline',
        PackageCategory.RENDERING,
        'com.unity.render-pipelines.universal',
    ),
    'HDRP': PackageInfo(
        'High Definition Render Pipeline',
        'com.unity.render-pipelines.high-definition',
        'High Definition Render Pipeline',
        PackageCategory.RENDERING,
        'com.unity.render-pipelines.high-definition',
    ),
    'UI Toolkit': PackageInfo(
        'UI Toolkit',
        'com.unity.ui',
        "Unity's new UI system",
        PackageCategory.UI,
        'com.unity.ui',
    ),
    'Netcode for GameObjects': PackageInfo(
        'Netcode for GameObjects',
        'com.unity.netcode.gameobjects',
        "Unity's networking solution",
        PackageCategory.NETWORKING,
        'com.unity.netcode.gameobjects',
    ),
    'Unity Audio': PackageInfo(
        'Unity Audio',
        'com.unity.modules.audio',
        'Unity Audio modules',
        PackageCategory.AUDIO,
        'com.unity.modules.audio',
    ),
    'Unity Analytics': PackageInfo(
        'Unity Analytics',
        'com.unity.analytics',
        'Unity Analytics services',
        PackageCategory.SERVICES,
        'com.unity.analytics',
    ),
    'Test Framework': PackageInfo(
        'Test Framework',
        'com.unity.test-framework',
        'Unity Test Framework',
        PackageCategory.TESTING,
        'com.unity.test-framework',
    ),
}

# Named sets of catalog keys installed together
PACKAGE_SETS: dict[str, tuple[str, ...]] = {
    'Recommended Packages': (
        'Input System',
        'Addressables',
        'Cinemachine',
        'URP',
    ),
    '3D Game Development': (
        'Input System',
        'Addressables',
        'Cinemachine',
        'URP',
        'UniTask',
    ),
    '2D Game Development': ('Input System', 'Addressables', 'UniTask'),
}

# Sets covering every catalog entry of a category
CATEGORY_SETS: dict[str, PackageCategory] = {
    'Core Unity Packages': PackageCategory.CORE,
    'Rendering Packages': PackageCategory.RENDERING,
}


class PackageCatalog:
    """Read-mostly lookup table of known packages, keyed by a short name."""

    def __init__(self, packages: dict[str, PackageInfo] | None = None) -> None:
        if packages is None:
            packages = DEFAULT_PACKAGES
        self._packages = dict(packages)

    def __contains__(self, key: str) -> bool:
        return key in self._packages

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def get_package(self, key: str) -> PackageInfo | None:
        return self._packages.get(key)

    def get_all_packages(self) -> list[PackageInfo]:
        return list(self._packages.values())

    def get_packages_by_category(
        self, category: PackageCategory
    ) -> list[PackageInfo]:
        return [p for p in self._packages.values() if p.category == category]

    def get_package_names(self) -> list[str]:
        return list(self._packages)

    def has_package(self, key: str) -> bool:
        return key in self._packages

    def add_custom_package(self, key: str, package: PackageInfo) -> None:
        """Add `package` under `key`, replacing any entry with that key."""
        if key in self._packages:
            log.info("Replacing catalog entry '%s'", key)
        self._packages[key] = package

    def resolve(self, keys: Iterable[str]) -> list[PackageInfo]:
        """Catalog entries for `keys`, skipping the unknown ones."""
        return [self._packages[k] for k in keys if k in self._packages]

    def get_package_set(self, set_name: str) -> list[PackageInfo]:
        if set_name in CATEGORY_SETS:
            return self.get_packages_by_category(CATEGORY_SETS[set_name])
        try:
            keys = PACKAGE_SETS[set_name]
        except KeyError:
            raise ValueError(f"Unknown package set '{set_name}'") from None
        return self.resolve(keys)
