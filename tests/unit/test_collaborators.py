"""Unit tests for the display and notifier collaborators."""

import io

from rich.console import Console

from homesecurity.lib.display import ConsoleDisplay
from homesecurity.lib.notifier import ConsoleNotifier, LogNotifier
from homesecurity.models import (
    AlertEvent,
    DisplayUpdate,
    SensorKind,
    SessionState,
    SessionStateChange,
)
from homesecurity.services.classifier import classify


def quiet_console() -> Console:
    return Console(file=io.StringIO(), force_terminal=False, width=120)


def state_change(state, previous, **kwargs) -> SessionStateChange:
    return SessionStateChange(state=state, previous_state=previous, attempt_id=1, **kwargs)


class TestConsoleDisplay:

    def test_starts_waiting(self):
        display = ConsoleDisplay(console=quiet_console())

        for kind in SensorKind:
            assert display.status_of(kind).text == "Waiting..."

    def test_update_replaces_status(self):
        display = ConsoleDisplay(console=quiet_console())
        display.update(DisplayUpdate.from_classified(classify(SensorKind.GAS, "700")))

        assert display.status_of(SensorKind.GAS).text == "GAS LEAK!"
        assert display.status_of(SensorKind.FLAME).text == "Waiting..."

    def test_unrouted_does_not_touch_sensors(self):
        display = ConsoleDisplay(console=quiet_console())
        display.update(DisplayUpdate.unrouted("home/smoke", "1"))

        for kind in SensorKind:
            assert display.status_of(kind).text == "Waiting..."

    def test_disconnect_resets_statuses(self):
        display = ConsoleDisplay(console=quiet_console())
        display.update(DisplayUpdate.from_classified(classify(SensorKind.LIGHT, "0")))

        display.on_state_change(state_change(SessionState.DISCONNECTED, SessionState.CONNECTED))

        assert display.status_of(SensorKind.LIGHT).text == "Waiting..."
        assert display.session_state == SessionState.DISCONNECTED

    def test_status_line(self):
        display = ConsoleDisplay(console=quiet_console())
        display.on_state_change(state_change(
            SessionState.FAILED, SessionState.CONNECTING, reason="Unable to reach broker"
        ))

        assert display.status_line().plain == "Connection failed ✗ (Unable to reach broker)"

    def test_render_prints_every_sensor(self):
        console = quiet_console()
        display = ConsoleDisplay(console=console)
        display.update(DisplayUpdate.decode_error(SensorKind.WATER, "abc"))

        display.print()
        output = console.file.getvalue()

        for kind in SensorKind:
            assert kind.label in output
        assert "Error: abc" in output


class TestNotifiers:

    def test_log_notifier_counts(self):
        notifier = LogNotifier()
        notifier.notify(AlertEvent.create_onset_alert(SensorKind.FLAME, 100))

        assert notifier.delivered == 1

    def test_console_notifier_replaces_same_kind(self):
        notifier = ConsoleNotifier(console=quiet_console(), bell=False)
        notifier.notify(AlertEvent.create_onset_alert(SensorKind.GAS, 600))
        notifier.notify(AlertEvent.create_onset_alert(SensorKind.GAS, 900))
        notifier.notify(AlertEvent.create_onset_alert(SensorKind.WATER, 500))

        active = notifier.active_alerts()
        assert sorted(alert.alert_id for alert in active) == [2, 3]
        assert [a.value for a in active if a.kind == SensorKind.GAS] == [900]
        assert len(notifier.history) == 3

    def test_cleared_alert_removes_active(self):
        notifier = ConsoleNotifier(console=quiet_console(), bell=False)
        notifier.notify(AlertEvent.create_onset_alert(SensorKind.FLAME))
        notifier.notify(AlertEvent.create_cleared_alert(SensorKind.FLAME))

        assert notifier.active_alerts() == []

    def test_panel_shows_title_and_body(self):
        console = quiet_console()
        notifier = ConsoleNotifier(console=console, bell=False)
        notifier.notify(AlertEvent.create_onset_alert(SensorKind.FLAME))

        output = console.file.getvalue()
        assert "FIRE DETECTED!" in output
        assert "Check your home immediately!" in output

    def test_dismiss(self):
        notifier = ConsoleNotifier(console=quiet_console(), bell=False)
        notifier.notify(AlertEvent.create_onset_alert(SensorKind.WATER))

        assert notifier.dismiss(3)
        assert not notifier.dismiss(3)
