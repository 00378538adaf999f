from upm_utils.qt_widgets import InstallerStatusLabel


def test_status_label_follows_queue(qtbot, installer, stub_client):
    label = InstallerStatusLabel(installer)
    qtbot.addWidget(label)
    assert label.text() == 'Queue: 0'
    assert not label.is_listening

    label.show()
    assert label.is_listening

    stub_client.polls = 3
    installer.enqueue('Pkg1', 'url1')
    assert label.last_event == 'Installing: Pkg1'
    assert label.text().startswith('Installing... (0 queued)')

    with qtbot.waitSignal(installer.queueCompleted, timeout=5_000):
        pass
    assert label.last_event == 'All packages processed'
    assert label.text() == 'Queue: 0 | All packages processed'


def test_status_label_reports_failures(qtbot, installer, stub_client):
    stub_client.outcomes['bad'] = 'Package not found'
    label = InstallerStatusLabel(installer)
    qtbot.addWidget(label)
    label.show()

    with qtbot.waitSignal(installer.installFailed, timeout=5_000):
        installer.enqueue('Broken', 'bad')

    assert label.last_event == 'Failed: Broken'
    assert label.toolTip() == 'Package not found'


def test_status_label_stops_listening_when_hidden(qtbot, installer):
    label = InstallerStatusLabel(installer)
    qtbot.addWidget(label)
    label.show()
    label.hide()
    assert not label.is_listening

    with qtbot.waitSignal(installer.queueCompleted, timeout=5_000):
        installer.enqueue('Pkg1', 'url1')

    assert label.last_event == ''
