import json
import os

import pytest

os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

from upm_utils.base_qt_package_installer import (  # noqa: E402
    AbstractAddOperation,
    AbstractPackageClient,
    AddResult,
    InstalledPackage,
    InstallerQueue,
    OperationStatus,
    PackageSource,
)


class StubOperation(AbstractAddOperation):
    """Operation that completes after being polled `polls` times."""

    def __init__(self, locator, outcome, polls=1):
        self.locator = locator
        self.outcome = outcome
        self.polls = polls
        self.checks = 0

    @property
    def is_completed(self):
        self.checks += 1
        return self.checks > self.polls

    def finish(self):
        self.polls = 0

    @property
    def status(self):
        if isinstance(self.outcome, AddResult):
            return OperationStatus.SUCCESS
        if self.outcome is None:
            return OperationStatus.IN_PROGRESS
        return OperationStatus.FAILURE

    @property
    def result(self):
        return self.outcome

    @property
    def error(self):
        return self.outcome


class StubClient(AbstractPackageClient):
    """Scripted package client.

    ``outcomes`` maps a locator to an `AddResult` (success), a string
    (failure message) or an exception instance raised by `add`. Unknown
    locators succeed with their locator as display name.
    """

    def __init__(self, outcomes=None, installed=(), polls=1):
        super().__init__()
        self.outcomes = dict(outcomes or {})
        self.installed = list(installed)
        self.polls = polls
        self.operations = []
        self.list_calls = 0
        self.max_in_flight = 0
        self.closed = False

    def add(self, locator):
        in_flight = sum(1 for op in self.operations if op.checks <= op.polls)
        self.max_in_flight = max(self.max_in_flight, in_flight + 1)
        outcome = self.outcomes.get(
            locator, AddResult(locator, f'com.test.{locator}', '1.0.0')
        )
        if isinstance(outcome, Exception):
            raise outcome
        op = StubOperation(locator, outcome, self.polls)
        self.operations.append(op)
        return op

    @property
    def added(self):
        return [op.locator for op in self.operations]

    def list_installed(self):
        self.list_calls += 1
        return list(self.installed)

    def close(self):
        self.closed = True


def make_package(
    package_id,
    version='1.0.0',
    source=PackageSource.REGISTRY,
    dependencies=(),
):
    return InstalledPackage(
        id=package_id,
        display_name=package_id.rsplit('.', 1)[-1].title(),
        version=version,
        source=source,
        dependencies=tuple(dependencies),
    )


class EventRecorder:
    def __init__(self, installer):
        self.events = []
        installer.packageQueued.connect(
            lambda name: self.events.append(('queued', name))
        )
        installer.packageInstalled.connect(
            lambda name: self.events.append(('installed', name))
        )
        installer.installFailed.connect(
            lambda name, reason: self.events.append(('failed', name, reason))
        )
        installer.queueCompleted.connect(
            lambda: self.events.append(('completed',))
        )

    def names(self):
        return [event[:2] for event in self.events]


@pytest.fixture
def stub_client():
    return StubClient()


@pytest.fixture
def installer(qtbot, stub_client):
    return InstallerQueue(client=stub_client, poll_interval=5)


@pytest.fixture
def recorder(installer):
    return EventRecorder(installer)


@pytest.fixture
def unity_project(tmp_path):
    """A minimal Unity project with a manifest and no lock file."""
    packages = tmp_path / 'Packages'
    packages.mkdir()
    manifest = {
        'dependencies': {
            'com.unity.modules.audio': '1.0.0',
            'com.unity.ugui': '1.0.0',
        }
    }
    (packages / 'manifest.json').write_text(json.dumps(manifest, indent=2))
    return tmp_path
