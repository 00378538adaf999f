import json
import re
from pathlib import Path

# Scoped reverse-domain names accepted by the Unity Package Manager
_PACKAGE_ID_RE = re.compile(r'^[a-z0-9][a-z0-9\-_]*(\.[a-z0-9\-_]+)+$')
_URL_PREFIXES = ('https://', 'http://', 'git+', 'git@', 'ssh://', 'file:')


def is_url_locator(locator: str) -> bool:
    """Whether `locator` points to a git repository, a url or a local path."""
    return locator.startswith(_URL_PREFIXES) or locator.endswith('.git')


def is_valid_package_id(package_id: str) -> bool:
    return bool(_PACKAGE_ID_RE.match(package_id))


def split_locator(locator: str) -> tuple[str, str | None]:
    """Split a package locator into a package id and an optional reference.

    Accepted forms are ``com.company.package``,
    ``com.company.package@1.2.3`` and ``com.company.package@<url>``.

    Returns
    -------
    tuple[str, str | None]
        The package id and the version or url that follows ``@``,
        ``None`` when the locator is a bare id.

    Raises
    ------
    ValueError
        If the locator is empty, is a bare url or does not start with a
        valid package id.
    """
    locator = locator.strip()
    if not locator:
        raise ValueError('Package locator cannot be empty')
    package_id, sep, reference = locator.partition('@')
    if not is_valid_package_id(package_id):
        if is_url_locator(locator):
            raise ValueError(
                f"Cannot determine package name from '{locator}'. "
                "Use the '<package-id>@<url>' form."
            )
        raise ValueError(f"Invalid package name '{package_id}'")
    if sep and not reference:
        raise ValueError(f"Missing version or url after '@' in '{locator}'")
    return package_id, reference or None


def read_json(path: Path) -> dict:
    with open(path, encoding='utf-8') as f:
        return json.load(f)


def find_package_manifest(project_path: Path, package_id: str) -> Path | None:
    """Find the ``package.json`` of `package_id` inside a Unity project.

    Embedded packages live in ``Packages/<id>`` while resolved ones are
    unpacked by the editor into ``Library/PackageCache/<id>@<hash>``.
    """
    embedded = project_path / 'Packages' / package_id / 'package.json'
    if embedded.is_file():
        return embedded
    cache_dir = project_path / 'Library' / 'PackageCache'
    matches = sorted(cache_dir.glob(f'{package_id}@*/package.json'))
    return matches[0] if matches else None
