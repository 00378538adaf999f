import configparser
from logging import getLogger
from pathlib import Path

from upm_utils.package_database import (
    PackageCatalog,
    PackageCategory,
    PackageInfo,
)

DEFAULT_CONFIG_PATH = Path.home() / '.upm-utils'
DEFAULT_CONFIG_FILE_PATH = DEFAULT_CONFIG_PATH / 'upm-utils.ini'
PACKAGE_SECTION_PREFIX = 'package:'

log = getLogger(__name__)


def _defaults() -> dict[str, dict[str, str]]:
    return {
        'general': {'poll_interval': '100', 'cache_ttl': '5'},
        'project': {'path': ''},
    }


def get_configuration() -> configparser.ConfigParser:
    """
    Get package utilities configuration.

    Missing settings fall back to their defaults, and the file is created
    with the defaults on first use:
        * `['general']['poll_interval']` -> int, milliseconds
        * `['general']['cache_ttl']` -> float, seconds
        * `['project']['path']` -> str, Unity project root

    Sections named ``[package:<key>]`` add custom packages to the catalog,
    see `load_catalog`.
    """
    DEFAULT_CONFIG_PATH.mkdir(parents=True, exist_ok=True)
    config = configparser.ConfigParser()
    config.read_dict(_defaults())

    if DEFAULT_CONFIG_FILE_PATH.exists():
        config.read(DEFAULT_CONFIG_FILE_PATH)
    else:
        # Write the configuration to a file
        with open(DEFAULT_CONFIG_FILE_PATH, 'w') as configfile:
            config.write(configfile)

    return config


def load_catalog(config: configparser.ConfigParser) -> PackageCatalog:
    """Return the default catalog extended with configured custom packages.

    A custom package section looks like::

        [package:My Tools]
        url = https://github.com/me/tools.git
        package_id = com.me.tools
        description = In-house tools
        category = utility
    """
    catalog = PackageCatalog()
    for section in config.sections():
        if not section.startswith(PACKAGE_SECTION_PREFIX):
            continue
        key = section[len(PACKAGE_SECTION_PREFIX) :].strip()
        options = config[section]
        try:
            package = PackageInfo(
                display_name=options.get('display_name', key),
                url=options['url'],
                description=options.get('description', ''),
                category=PackageCategory.parse(
                    options.get('category', 'utility')
                ),
                package_id=options.get('package_id', options['url']),
            )
        except (KeyError, ValueError) as e:
            log.warning('Skipping custom package [%s]: %s', section, e)
            continue
        catalog.add_custom_package(key, package)
    return catalog
