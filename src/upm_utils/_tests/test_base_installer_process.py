import pytest

from upm_utils.base_qt_package_installer import (
    AbstractAddOperation,
    AbstractPackageClient,
    InstallerQueue,
    PackageSource,
)


def test_not_implemented_methods():
    client = AbstractPackageClient()
    with pytest.raises(NotImplementedError):
        client.add('com.unity.ugui')

    with pytest.raises(NotImplementedError):
        client.list_installed()

    operation = AbstractAddOperation()
    for attr in ('is_completed', 'status', 'result', 'error'):
        with pytest.raises(NotImplementedError):
            getattr(operation, attr)


def test_default_client_class(qtbot):
    installer = InstallerQueue(project_path='/tmp/project')
    assert type(installer.client) is AbstractPackageClient
    assert installer.client.project_path == '/tmp/project'


def test_abstract_client_start_failure(qtbot):
    installer = InstallerQueue(poll_interval=5)
    failures = []

    def on_failed(name, reason):
        failures.append(name)

    with installer.listen(failed=on_failed):
        with qtbot.waitSignal(installer.queueCompleted, timeout=1_000):
            installer.enqueue('Pkg1', 'com.test.pkg1')

    assert failures == ['Pkg1']


@pytest.mark.parametrize(
    ('value', 'expected'),
    [
        ('git', PackageSource.GIT),
        ('local-tarball', PackageSource.LOCAL_TARBALL),
        ('builtin', PackageSource.BUILTIN),
        ('something-else', PackageSource.UNKNOWN),
        (None, PackageSource.UNKNOWN),
    ],
)
def test_package_source_parse(value, expected):
    assert PackageSource.parse(value) is expected
