"""Unit tests for the edge-triggered alert latch."""

import pytest

from homesecurity.models import AlertType, LatchState, SensorKind, Severity
from homesecurity.services.alert_latch import AlertLatch, LatchTransition


class TestTransitions:

    def test_first_critical_is_onset(self):
        latch = AlertLatch()

        assert latch.transition(SensorKind.FLAME, Severity.CRITICAL) == LatchTransition.ONSET
        assert latch.is_latched(SensorKind.FLAME)

    def test_repeated_critical_is_silent(self):
        latch = AlertLatch()
        latch.transition(SensorKind.GAS, Severity.CRITICAL)

        assert latch.transition(SensorKind.GAS, Severity.CRITICAL) is None
        assert latch.transition(SensorKind.GAS, Severity.CRITICAL) is None

    @pytest.mark.parametrize("severity", [Severity.NORMAL, Severity.WARNING])
    def test_leaving_critical_is_cleared(self, severity):
        latch = AlertLatch()
        latch.transition(SensorKind.WATER, Severity.CRITICAL)

        assert latch.transition(SensorKind.WATER, severity) == LatchTransition.CLEARED
        assert not latch.is_latched(SensorKind.WATER)

    def test_non_critical_while_clear_is_silent(self):
        latch = AlertLatch()

        assert latch.transition(SensorKind.FLAME, Severity.WARNING) is None
        assert latch.transition(SensorKind.FLAME, Severity.NORMAL) is None

    def test_kinds_are_independent(self):
        latch = AlertLatch()
        latch.transition(SensorKind.FLAME, Severity.CRITICAL)

        assert latch.transition(SensorKind.GAS, Severity.CRITICAL) == LatchTransition.ONSET
        assert latch.transition(SensorKind.FLAME, Severity.NORMAL) == LatchTransition.CLEARED
        assert latch.is_latched(SensorKind.GAS)

    def test_light_is_rejected(self):
        latch = AlertLatch()

        with pytest.raises(ValueError):
            latch.transition(SensorKind.LIGHT, Severity.ON)


class TestUpdate:

    def test_single_alert_for_sustained_critical(self):
        latch = AlertLatch()
        alerts = [latch.update(SensorKind.GAS, Severity.CRITICAL, 600) for _ in range(3)]

        assert alerts[0] is not None
        assert alerts[1] is None
        assert alerts[2] is None

    def test_retrigger_after_clear(self):
        latch = AlertLatch()
        sequence = [Severity.CRITICAL, Severity.NORMAL, Severity.CRITICAL]
        alerts = [latch.update(SensorKind.WATER, severity) for severity in sequence]

        assert [alert is not None for alert in alerts] == [True, False, True]

    def test_onset_alert_content(self):
        latch = AlertLatch()
        alert = latch.update(SensorKind.FLAME, Severity.CRITICAL, 120)

        assert alert.kind == SensorKind.FLAME
        assert alert.alert_type == AlertType.ONSET
        assert alert.alert_id == 1
        assert alert.value == 120
        assert alert.title == "🔥 FIRE DETECTED!"

    def test_cleared_alert_only_when_enabled(self):
        quiet = AlertLatch()
        chatty = AlertLatch(notify_on_clear=True)

        for latch in (quiet, chatty):
            latch.update(SensorKind.GAS, Severity.CRITICAL)

        assert quiet.update(SensorKind.GAS, Severity.NORMAL) is None

        cleared = chatty.update(SensorKind.GAS, Severity.NORMAL)
        assert cleared.alert_type == AlertType.CLEARED
        assert cleared.alert_id == 2

    def test_reset_rearms_every_kind(self):
        latch = AlertLatch()
        for kind in (SensorKind.FLAME, SensorKind.GAS, SensorKind.WATER):
            latch.update(kind, Severity.CRITICAL)

        latch.reset()

        for kind in (SensorKind.FLAME, SensorKind.GAS, SensorKind.WATER):
            assert not latch.is_latched(kind)
            assert latch.update(kind, Severity.CRITICAL) is not None

    def test_shared_state(self):
        state = LatchState()
        latch = AlertLatch(state=state)
        latch.update(SensorKind.WATER, Severity.CRITICAL)

        assert state.snapshot() == {"flame": False, "gas": False, "water": True}
