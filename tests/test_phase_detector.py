"""Tests for the rule-based phase detector."""

from __future__ import annotations

import logging

import pytest

from tests.fixtures.samples import FakeClock, make_sample
from wumon.analysis.phase_detector import (
    PastPhase,
    Phase,
    PhaseDetector,
    PhaseEvent,
    classify,
)


def _detector(clock: FakeClock, wall_clock: FakeClock, **kwargs) -> PhaseDetector:
    return PhaseDetector(clock=clock, wall_clock=wall_clock, **kwargs)


class TestClassify:
    def test_idle_baseline(self) -> None:
        assert classify(make_sample(cpu=5, mem=30, disk_q=0, net_total=0.1)) == (Phase.IDLE, 0.95)

    def test_download_detected(self) -> None:
        assert classify(make_sample(cpu=15, mem=40, disk_q=1, net_total=12)) == (
            Phase.DOWNLOADING,
            0.90,
        )

    def test_installing(self) -> None:
        assert classify(make_sample(cpu=60, mem=55, disk_q=6, net_total=0)) == (
            Phase.INSTALLING,
            0.85,
        )

    def test_configuring(self) -> None:
        assert classify(make_sample(cpu=35, mem=55, disk_q=7, net_total=0.2)) == (
            Phase.CONFIGURING,
            0.80,
        )

    def test_processing(self) -> None:
        assert classify(make_sample(cpu=25, disk_q=1, net_total=0.5)) == (Phase.PROCESSING, 0.70)

    def test_fallback_idle(self) -> None:
        # cpu between 10 and 20 with no network matches no rule
        assert classify(make_sample(cpu=15, disk_q=0, net_total=0)) == (Phase.IDLE, 0.50)

    def test_rule_order_installing_beats_downloading(self) -> None:
        """cpu=45 fails rule 1 (cpu < 30) so rule 2 wins."""
        assert classify(make_sample(cpu=45, mem=50, disk_q=4, net_total=6)) == (
            Phase.INSTALLING,
            0.85,
        )

    def test_downloading_beats_installing_when_both_match(self) -> None:
        # Rule 1 cannot match together with rule 2 (cpu<30 vs cpu>40), but
        # rule 1 is checked first even with a busy disk
        assert classify(make_sample(cpu=25, disk_q=9, net_total=8))[0] is Phase.DOWNLOADING

    @pytest.mark.parametrize(
        ("cpu", "disk_q", "net", "expected"),
        [
            # net exactly 5 is not > 5; cpu < 10 but net >= 1 -> fallback
            (5, 0, 5, Phase.IDLE),
            # cpu exactly 30 is not < 30 for rule 1 and not > 30 for rule 3
            (30, 0, 6, Phase.IDLE),
            # cpu exactly 40 fails rule 2, falls to rule 4
            (40, 4, 0, Phase.PROCESSING),
            # disk_q exactly 3 fails rule 2
            (50, 3, 0, Phase.PROCESSING),
            # cpu exactly 20 fails rule 4; not < 10 -> fallback
            (20, 0, 0, Phase.IDLE),
            # net exactly 1 fails rules 3-5
            (25, 0, 1, Phase.IDLE),
            # disk_q exactly 2 fails rule 5
            (5, 2, 0, Phase.IDLE),
        ],
    )
    def test_boundaries_fall_through(
        self, cpu: float, disk_q: float, net: float, expected: Phase
    ) -> None:
        phase, _confidence = classify(make_sample(cpu=cpu, disk_q=disk_q, net_total=net))
        assert phase is expected

    def test_boundary_confidences(self) -> None:
        assert classify(make_sample(cpu=5, disk_q=2, net_total=0)) == (Phase.IDLE, 0.50)
        assert classify(make_sample(cpu=5, disk_q=1.99, net_total=0)) == (Phase.IDLE, 0.95)


class TestPhaseDetector:
    def test_starts_idle(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        assert detector.current_phase is Phase.IDLE
        event = detector.detect(make_sample(cpu=5, mem=30, disk_q=0, net_total=0.1))
        assert event == PhaseEvent(Phase.IDLE, 0.95, 0, ())

    def test_idle_duration_counts_from_creation(
        self, clock: FakeClock, wall_clock: FakeClock
    ) -> None:
        detector = _detector(clock, wall_clock)
        clock.advance(7.4)
        event = detector.detect(make_sample())
        assert event.phase is Phase.IDLE
        assert event.current_duration_s == 7
        assert event.history == ()

    def test_download_from_idle(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        clock.advance(3.0)
        wall_clock.advance(3.0)
        event = detector.detect(make_sample(cpu=15, mem=40, disk_q=1, net_total=12))
        assert event.phase is Phase.DOWNLOADING
        assert event.confidence == 0.90
        assert event.current_duration_s == 0
        assert event.history == (PastPhase(Phase.IDLE, 3, wall_clock.now),)

    def test_install_then_configure(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)

        a = detector.detect(make_sample(cpu=60, mem=55, disk_q=6, net_total=0))
        assert (a.phase, a.confidence, a.current_duration_s) == (Phase.INSTALLING, 0.85, 0)

        clock.advance(42.0)
        wall_clock.advance(42.0)
        b = detector.detect(make_sample(cpu=35, mem=55, disk_q=7, net_total=0.2))
        assert (b.phase, b.confidence, b.current_duration_s) == (Phase.CONFIGURING, 0.80, 0)
        assert b.history[-1] == PastPhase(Phase.INSTALLING, 42, wall_clock.now)
        assert [p.phase for p in b.history] == [Phase.IDLE, Phase.INSTALLING]

    def test_duration_grows_while_phase_unchanged(
        self, clock: FakeClock, wall_clock: FakeClock
    ) -> None:
        detector = _detector(clock, wall_clock)
        detector.detect(make_sample(cpu=60, disk_q=6))
        durations = []
        for _ in range(5):
            clock.advance(2.0)
            durations.append(detector.detect(make_sample(cpu=60, disk_q=6)).current_duration_s)
        assert durations == [2, 4, 6, 8, 10]

    def test_duration_rounds_half_up(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        clock.advance(2.5)
        assert detector.detect(make_sample()).current_duration_s == 3
        clock.advance(0.4)
        assert detector.detect(make_sample()).current_duration_s == 3

    def test_phase_start_keeps_full_resolution(
        self, clock: FakeClock, wall_clock: FakeClock
    ) -> None:
        detector = _detector(clock, wall_clock)
        clock.advance(0.4)
        detector.detect(make_sample(cpu=60, disk_q=6))
        clock.advance(1.2)
        # 1.2s since the transition, not 1.6 or a rounded start
        assert detector.detect(make_sample(cpu=60, disk_q=6)).current_duration_s == 1

    def test_duration_never_decreases(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        clock.advance(10.0)
        assert detector.detect(make_sample()).current_duration_s == 10
        clock.advance(-5.0)
        assert detector.detect(make_sample()).current_duration_s == 10

    def test_same_phase_different_confidence_is_not_a_transition(
        self, clock: FakeClock, wall_clock: FakeClock
    ) -> None:
        detector = _detector(clock, wall_clock)
        clock.advance(4.0)
        event = detector.detect(make_sample(cpu=15))  # fallback Idle, 0.5
        assert (event.phase, event.confidence) == (Phase.IDLE, 0.50)
        assert event.current_duration_s == 4
        assert event.history == ()

    def test_history_bounded(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        busy = make_sample(cpu=60, disk_q=6)
        idle = make_sample()
        event = None
        for i in range(25):
            clock.advance(1.0)
            wall_clock.advance(1.0)
            event = detector.detect(busy if i % 2 == 0 else idle)
        assert event is not None
        assert len(event.history) == 10
        ended = [p.ended_at for p in event.history]
        assert ended == sorted(ended)
        assert ended[-1] == wall_clock.now

    def test_custom_history_size(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock, history_size=2)
        for sample in (
            make_sample(cpu=60, disk_q=6),
            make_sample(cpu=15, net_total=12),
            make_sample(),
        ):
            event = detector.detect(sample)
        assert [p.phase for p in event.history] == [Phase.INSTALLING, Phase.DOWNLOADING]

    def test_invalid_history_size(self) -> None:
        with pytest.raises(ValueError, match="history_size"):
            PhaseDetector(history_size=0)

    def test_resize_history(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        for sample in (
            make_sample(cpu=60, disk_q=6),
            make_sample(cpu=15, net_total=12),
            make_sample(),
        ):
            detector.detect(sample)
        detector.resize_history(1)
        assert [p.phase for p in detector.history] == [Phase.DOWNLOADING]
        detector.resize_history(5)
        event = detector.detect(make_sample(cpu=60, disk_q=6))
        assert [p.phase for p in event.history] == [Phase.DOWNLOADING, Phase.IDLE]
        with pytest.raises(ValueError, match="history_size"):
            detector.resize_history(0)

    def test_ended_at_monotone_when_wall_clock_jumps_back(
        self, clock: FakeClock, wall_clock: FakeClock
    ) -> None:
        detector = _detector(clock, wall_clock)
        detector.detect(make_sample(cpu=60, disk_q=6))
        first = detector.history[-1].ended_at
        wall_clock.advance(-3600.0)
        detector.detect(make_sample())
        assert detector.history[-1].ended_at == first

    def test_history_never_contains_current_phase_entry(
        self, clock: FakeClock, wall_clock: FakeClock
    ) -> None:
        detector = _detector(clock, wall_clock)
        detector.detect(make_sample(cpu=60, disk_q=6))
        event = detector.detect(make_sample(cpu=60, disk_q=6))
        # Only the initial Idle has completed
        assert [p.phase for p in event.history] == [Phase.IDLE]

    def test_reset(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        detector.detect(make_sample(cpu=60, disk_q=6))
        clock.advance(30.0)
        detector.reset()
        assert detector.current_phase is Phase.IDLE
        assert detector.history == ()
        clock.advance(2.0)
        event = detector.detect(make_sample())
        assert event == PhaseEvent(Phase.IDLE, 0.95, 2, ())


class TestSubscribers:
    def test_callbacks_receive_events_in_order(
        self, clock: FakeClock, wall_clock: FakeClock
    ) -> None:
        detector = _detector(clock, wall_clock)
        calls: list[tuple[str, Phase]] = []
        detector.subscribe(lambda e: calls.append(("a", e.phase)))
        detector.subscribe(lambda e: calls.append(("b", e.phase)))

        detector.detect(make_sample(cpu=60, disk_q=6))
        detector.detect(make_sample())

        assert calls == [
            ("a", Phase.INSTALLING),
            ("b", Phase.INSTALLING),
            ("a", Phase.IDLE),
            ("b", Phase.IDLE),
        ]

    def test_returned_event_is_dispatched_event(
        self, clock: FakeClock, wall_clock: FakeClock
    ) -> None:
        detector = _detector(clock, wall_clock)
        seen: list[PhaseEvent] = []
        detector.subscribe(seen.append)
        event = detector.detect(make_sample())
        assert seen == [event]

    def test_unsubscribe(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        seen: list[PhaseEvent] = []
        handle = detector.subscribe(seen.append)
        detector.detect(make_sample())
        detector.unsubscribe(handle)
        detector.detect(make_sample())
        assert len(seen) == 1
        # Unknown / repeated handles are ignored
        detector.unsubscribe(handle)
        detector.unsubscribe(9999)

    def test_unsubscribe_during_dispatch(self, clock: FakeClock, wall_clock: FakeClock) -> None:
        detector = _detector(clock, wall_clock)
        seen: list[Phase] = []
        handle = 0

        def once(event: PhaseEvent) -> None:
            seen.append(event.phase)
            detector.unsubscribe(handle)

        handle = detector.subscribe(once)
        detector.detect(make_sample())
        detector.detect(make_sample())
        assert seen == [Phase.IDLE]

    def test_failing_subscriber_isolated(
        self,
        clock: FakeClock,
        wall_clock: FakeClock,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        detector = _detector(clock, wall_clock)
        seen: list[Phase] = []

        def boom(event: PhaseEvent) -> None:
            raise RuntimeError("renderer crashed")

        detector.subscribe(boom)
        detector.subscribe(lambda e: seen.append(e.phase))

        with caplog.at_level(logging.WARNING, logger="wumon.analysis.phase_detector"):
            first = detector.detect(make_sample(cpu=60, disk_q=6))
            clock.advance(5.0)
            second = detector.detect(make_sample(cpu=60, disk_q=6))

        assert seen == [Phase.INSTALLING, Phase.INSTALLING]
        assert first.current_duration_s == 0
        assert second.current_duration_s == 5
        assert "subscriber" in caplog.text
