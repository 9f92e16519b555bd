"""Tests for the DeltaEngine."""

import random

import pytest

from proctop.engine import DeltaEngine, PreviousState
from proctop.models import RawSystemCounters, Snapshot

from conftest import FakeSource, make_record


def counters(total: int, idle: int) -> RawSystemCounters:
    return RawSystemCounters(total_ticks=total, idle_ticks=idle)


def cpu_by_pid(snapshot: Snapshot) -> dict[int, float]:
    return {p.pid: p.cpu_pct for p in snapshot.processes}


class TestPreviousState:
    """Tests for PreviousState."""

    def test_from_reading(self):
        """State keeps the totals and one entry per process."""
        state = PreviousState.from_reading(
            counters(100, 80),
            [make_record(1, 10, start_time=5), make_record(2, 20)],
        )
        assert state.prev_total_ticks == 100
        assert state.prev_idle_ticks == 80
        assert state.prev_proc_ticks == {1: 10, 2: 20}
        assert state.prev_proc_starts == {1: 5, 2: 0}

    def test_is_frozen(self):
        """PreviousState is replaced, never reassigned field by field."""
        state = PreviousState()
        with pytest.raises(AttributeError):
            state.prev_total_ticks = 5


class TestSystemCpu:
    """Tests for aggregate CPU percentage."""

    def test_basic_scenario(self):
        """(100, 80) -> (200, 150) is 30% busy, pid 10 moving 10 ticks is 10%."""
        engine = DeltaEngine()
        engine.prime(counters(100, 80), [make_record(10, 5)])

        snapshot = engine.sample(counters(200, 150), [make_record(10, 15)])

        assert snapshot.system_cpu_pct == 30.0
        assert cpu_by_pid(snapshot) == {10: 10.0}

    def test_zero_total_delta_is_exactly_zero(self):
        """No elapsed ticks reports 0.0, not a rate against a fabricated denominator."""
        engine = DeltaEngine()
        engine.prime(counters(500, 100), [make_record(1, 10)])

        snapshot = engine.sample(counters(500, 100), [make_record(1, 11)])

        assert snapshot.system_cpu_pct == 0.0
        assert cpu_by_pid(snapshot) == {1: 0.0}

    def test_counter_regression_clamped(self):
        """Counters going backwards (reset) produce zero deltas."""
        engine = DeltaEngine()
        engine.prime(counters(10_000, 8_000), [make_record(1, 500)])

        snapshot = engine.sample(counters(50, 40), [make_record(1, 600)])

        assert snapshot.system_cpu_pct == 0.0
        assert cpu_by_pid(snapshot) == {1: 0.0}

    def test_idle_exceeding_total_clamped(self):
        """Idle delta larger than total delta clamps to 0%, never negative."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [])

        snapshot = engine.sample(counters(110, 62), [])

        assert snapshot.system_cpu_pct == 0.0

    def test_fully_busy(self):
        """No idle ticks means 100%."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [])

        snapshot = engine.sample(counters(300, 50), [])

        assert snapshot.system_cpu_pct == 100.0

    def test_random_counters_stay_in_range(self):
        """Any non-decreasing counters give a percentage within [0, 100]."""
        rng = random.Random(1234)
        engine = DeltaEngine()
        total, idle = 1000, 500
        engine.prime(counters(total, idle), [])

        for _ in range(200):
            total += rng.randint(0, 400)
            idle += rng.randint(0, 400)
            snapshot = engine.sample(counters(total, idle), [])
            assert 0.0 <= snapshot.system_cpu_pct <= 100.0


class TestProcessCpu:
    """Tests for per-process CPU percentage and churn."""

    def test_new_process_reports_zero(self):
        """A pid not seen in the previous tick reports 0% on its first tick."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(1, 10)])

        snapshot = engine.sample(counters(200, 100), [make_record(1, 20), make_record(2, 9000)])

        assert cpu_by_pid(snapshot) == {1: 10.0, 2: 0.0}

    def test_exit_then_reuse_reports_zero(self):
        """A pid present, then absent, then back again starts from scratch."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(7, 50)])

        gone = engine.sample(counters(200, 100), [make_record(8, 1)])
        assert 7 not in cpu_by_pid(gone)

        back = engine.sample(counters(300, 150), [make_record(7, 80), make_record(8, 3)])
        assert cpu_by_pid(back)[7] == 0.0
        assert cpu_by_pid(back)[8] == 2.0

    def test_reused_pid_with_lower_ticks(self):
        """pid 7 at 50 ticks replaced by a new pid 7 at 2 ticks reports 0%."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(7, 50)])

        snapshot = engine.sample(counters(200, 100), [make_record(7, 2)])

        assert cpu_by_pid(snapshot) == {7: 0.0}
        # The new occupant's own history starts here
        assert engine.state.prev_proc_ticks == {7: 2}

        later = engine.sample(counters(300, 150), [make_record(7, 12)])
        assert cpu_by_pid(later) == {7: 10.0}

    def test_reused_pid_detected_by_start_time(self):
        """A different start time means a different process even if ticks grew."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(7, 10, start_time=1000)])

        snapshot = engine.sample(counters(200, 100), [make_record(7, 60, start_time=1900)])

        assert cpu_by_pid(snapshot) == {7: 0.0}

    def test_same_start_time_keeps_history(self):
        """Matching start times keep computing deltas as usual."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(7, 10, start_time=1000)])

        snapshot = engine.sample(counters(200, 100), [make_record(7, 35, start_time=1000)])

        assert cpu_by_pid(snapshot) == {7: 25.0}

    def test_unknown_start_time_keeps_history(self):
        """A zero (unknown) start time on either side is not treated as reuse."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(7, 10, start_time=0)])

        snapshot = engine.sample(counters(200, 100), [make_record(7, 30, start_time=1000)])

        assert cpu_by_pid(snapshot) == {7: 20.0}

    def test_percentages_share_total_delta(self):
        """Every process in a tick is measured against the same total delta."""
        engine = DeltaEngine()
        engine.prime(counters(0, 0), [make_record(1, 0), make_record(2, 0), make_record(3, 0)])

        snapshot = engine.sample(
            counters(400, 100),
            [make_record(1, 100), make_record(2, 150), make_record(3, 50)],
        )

        assert cpu_by_pid(snapshot) == {1: 25.0, 2: 37.5, 3: 12.5}
        assert sum(p.cpu_pct for p in snapshot.processes) == pytest.approx(snapshot.system_cpu_pct)

    def test_processes_keep_source_order(self):
        """sample() does not rank."""
        engine = DeltaEngine()
        procs = [make_record(30), make_record(10), make_record(20)]
        engine.prime(counters(100, 50), procs)

        snapshot = engine.sample(counters(200, 100), procs)

        assert [p.pid for p in snapshot.processes] == [30, 10, 20]


class TestStateLifecycle:
    """Tests for priming and state replacement."""

    def test_unprimed_sample_is_zero_and_primes(self):
        """The first sample without prime() reports zeros and primes the engine."""
        engine = DeltaEngine()
        assert not engine.is_primed

        first = engine.sample(counters(1000, 400), [make_record(1, 500)])

        assert first.system_cpu_pct == 0.0
        assert cpu_by_pid(first) == {1: 0.0}
        assert engine.is_primed

        second = engine.sample(counters(1100, 450), [make_record(1, 520)])
        assert second.system_cpu_pct == 50.0
        assert cpu_by_pid(second) == {1: 20.0}

    def test_state_only_holds_live_processes(self):
        """Exited pids are dropped from the history map."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(pid, 1) for pid in range(100)])

        engine.sample(counters(200, 100), [make_record(5, 2), make_record(6, 3)])

        assert engine.state.prev_proc_ticks == {5: 2, 6: 3}
        assert set(engine.state.prev_proc_starts) == {5, 6}

    def test_state_replaced_wholesale(self):
        """Each tick installs a new PreviousState object."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(1, 1)])
        before = engine.state

        engine.sample(counters(200, 100), [make_record(1, 2)])

        assert engine.state is not before
        assert before.prev_proc_ticks == {1: 1}

    def test_engines_are_independent(self):
        """State lives on the instance, not the module."""
        a = DeltaEngine()
        b = DeltaEngine()
        a.prime(counters(100, 50), [])

        assert a.is_primed
        assert not b.is_primed

    def test_initial_state_argument(self):
        """An engine can start from a given state."""
        engine = DeltaEngine(PreviousState(prev_total_ticks=100, prev_idle_ticks=80))

        snapshot = engine.sample(counters(200, 150), [])

        assert snapshot.system_cpu_pct == 30.0


class TestDegradedInput:
    """Tests for zero and empty readings."""

    def test_empty_and_zero_reading(self):
        """Zeroed counters and no processes still produce a valid snapshot."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [make_record(1, 10)])

        snapshot = engine.sample(RawSystemCounters.zero(), [])

        assert snapshot.system_cpu_pct == 0.0
        assert snapshot.processes == ()
        assert snapshot.used_mem_kb == 0
        assert snapshot.total_mem_kb == 0
        assert snapshot.uptime_s == 0

    def test_recovers_after_transient_failure(self):
        """After a zeroed tick the next tick is computed against the zeroed reading."""
        engine = DeltaEngine()
        engine.prime(counters(100, 50), [])
        engine.sample(RawSystemCounters.zero(), [])

        snapshot = engine.sample(counters(200, 150), [])

        assert 0.0 <= snapshot.system_cpu_pct <= 100.0
        assert snapshot.system_cpu_pct == 25.0

    def test_memory_fields(self):
        """Used memory is total minus available, never negative."""
        engine = DeltaEngine()

        snapshot = engine.sample(counters(1, 1), [], mem_kb=(8000, 3000), uptime_s=42)
        assert snapshot.used_mem_kb == 5000
        assert snapshot.total_mem_kb == 8000
        assert snapshot.uptime_s == 42

        odd = engine.sample(counters(2, 2), [], mem_kb=(1000, 4000))
        assert odd.used_mem_kb == 0


class TestSampleFrom:
    """Tests for reading through a CounterSource."""

    def test_sample_from_source(self, fake_source: FakeSource):
        """prime_from/sample_from read every counter from the source."""
        engine = DeltaEngine()
        engine.prime_from(fake_source)

        snapshot = engine.sample_from(fake_source)

        assert snapshot.system_cpu_pct == 30.0
        assert cpu_by_pid(snapshot) == {10: 10.0, 20: 0.0}
        assert snapshot.total_mem_kb == 8_000_000
        assert snapshot.used_mem_kb == 2_000_000
        assert snapshot.uptime_s == 3661
