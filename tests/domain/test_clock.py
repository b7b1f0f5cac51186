"""Tests for the injectable clocks (``registrar_kernel.domain.clock``)."""

from datetime import datetime, timedelta, timezone

import pytest

from registrar_kernel.domain.clock import SEMESTER_START, DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_stands_still_until_advanced(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now() == SEMESTER_START

        assert clock.advance(90) == SEMESTER_START + timedelta(seconds=90)
        assert clock.tick() == SEMESTER_START + timedelta(seconds=91)

    def test_start_normalised_to_utc(self):
        lagos_noon = datetime(2026, 1, 12, 12, 0, tzinfo=timezone(timedelta(hours=1)))
        clock = DeterministicClock(lagos_noon)
        assert clock.now() == lagos_noon
        assert clock.now().tzinfo == timezone.utc

    def test_naive_times_refused(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2026, 1, 12, 12, 0))
        with pytest.raises(ValueError):
            DeterministicClock().set_time(datetime(2026, 1, 12))

    def test_cannot_run_backwards(self):
        with pytest.raises(ValueError):
            DeterministicClock().advance(-1)


def test_system_clock_is_aware_utc():
    assert SystemClock().now().tzinfo == timezone.utc
