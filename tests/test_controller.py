"""Tests for the Controller lifecycle."""

import io
import threading
import time

import pytest
from conftest import FakeProvider, raw

from runtop.config import MonitorConfig, OutputFormat
from runtop.controller import Controller, State, Transition, thread_timer
from runtop.errors import InvalidFile, InvalidOption, InvalidSortField
from runtop.render import SEPARATOR


@pytest.fixture
def stream():
    return io.StringIO()


@pytest.fixture
def controller(provider, timers, executor, stream):
    config = MonitorConfig(interval=100, first_interval=10)
    ctl = Controller(provider, config, timer_factory=timers, executor=executor, stream=stream)
    yield ctl
    ctl.shutdown()


class TestTransitions:
    """Tests for start/pause/stop."""

    def test_initial_state(self, controller):
        assert controller.state is State.IDLE
        assert controller.report is None

    def test_start_arms_first_interval(self, controller, timers):
        assert controller.start() is Transition.STARTED

        assert controller.state is State.RUNNING
        assert [t.delay for t in timers.pending] == [0.01]

    def test_first_interval_defaults_to_interval(self, provider, timers, executor):
        ctl = Controller(
            provider, MonitorConfig(interval=250), timer_factory=timers, executor=executor
        )

        ctl.start()

        assert timers.pending[0].delay == 0.25

    def test_start_when_started(self, controller):
        controller.start()

        assert controller.start(debug=True) is Transition.ALREADY_ACTIVE
        assert controller.config.debug is False

    def test_start_applies_options(self, controller):
        controller.start(debug=True)
        controller.pause()

        assert controller.status()["debug"] is True

        controller.start(debug=False)

        assert controller.status()["debug"] is False

    def test_start_with_invalid_option(self, controller):
        with pytest.raises(InvalidOption):
            controller.start(interval=0)

        assert controller.state is State.IDLE

    def test_start_with_invalid_config(self, controller, timers):
        with pytest.raises(InvalidSortField):
            controller.start(MonitorConfig(sort="bogus"))
        with pytest.raises(InvalidOption):
            controller.start(MonitorConfig(interval=0))

        assert controller.state is State.IDLE
        assert timers.pending == []
        assert controller.config.sort == "reduction_delta"

    def test_start_with_config_infers_format(self, controller, tmp_path):
        controller.start(MonitorConfig(file=str(tmp_path / "top.ndjson")))

        assert controller.config.format is OutputFormat.STRUCTURED

    def test_pause(self, controller, timers):
        controller.start()

        assert controller.pause() is Transition.PAUSED
        assert controller.state is State.PAUSED
        assert timers.pending == []

    def test_pause_when_paused(self, controller):
        controller.start()
        controller.pause()

        assert controller.pause() is Transition.ALREADY_HALTED
        assert Transition.ALREADY_HALTED.value == "already_halted"

    def test_pause_when_idle(self, controller):
        assert controller.pause() is Transition.ALREADY_HALTED

    def test_resume_after_pause(self, controller, timers):
        controller.start()
        controller.pause()

        assert controller.start() is Transition.STARTED
        assert len(timers.pending) == 1

    def test_stop(self, controller, timers):
        controller.start()
        timers.fire()

        assert controller.stop() is Transition.STOPPED
        assert controller.state is State.IDLE
        assert timers.pending == []
        assert controller.status(raw=True)["counters"]["previous_samples"] == 0


class TestTicks:
    """Tests for timer-driven collection."""

    def test_tick_collects_and_rearms(self, controller, timers):
        controller.start()

        assert timers.fire() is True

        report = controller.report
        assert [p.reduction_delta for p in report.processes] == [1000, 500]
        assert [t.delay for t in timers.pending] == [0.1]

    def test_second_pass_uses_previous_samples(self, controller, provider, timers):
        provider.update(raw(7, 200), total=200)
        controller.start()
        timers.fire()

        provider.update(raw(7, 250), total=300)
        timers.fire()

        [sample] = controller.report.processes
        assert sample.reduction_delta == 50
        assert sample.percent == 50.0

    def test_stray_tick_while_paused(self, controller, provider, timers):
        controller.start()
        timers.fire()
        report = controller.report
        controller.pause()

        assert controller.tick() is False
        assert controller.report is report
        assert provider.passes == 1

    def test_stray_tick_while_idle(self, controller, provider):
        assert controller.tick() is False
        assert controller.report is None
        assert provider.passes == 0

    def test_stop_clears_previous_samples(self, controller, provider, timers):
        controller.start()
        timers.fire()
        controller.stop()

        controller.start()
        timers.fire()

        assert [p.reduction_delta for p in controller.report.processes] == [1000, 500]

    def test_vanished_process_does_not_fail_tick(self, controller, provider, timers):
        provider.vanished.add("<0.3.0>")
        controller.start()

        timers.fire()

        assert len(controller.report.processes) == 2

    def test_provider_error_keeps_loop_alive(self, controller, provider, timers):
        def broken():
            raise RuntimeError("provider down")

        provider.system_stats = broken
        controller.start()

        timers.fire()

        assert controller.report is None
        assert controller.state is State.RUNNING
        assert not controller.is_collecting
        assert len(timers.pending) == 1


class TestOutput:
    """Tests for report dispatch."""

    def test_text_to_stream(self, controller, stream, timers):
        controller.start()
        timers.fire()

        text = stream.getvalue()
        assert text.startswith(SEPARATOR + "\nnonode@nohost")
        assert "code_server" in text

    def test_text_to_file(self, controller, timers, tmp_path, stream):
        path = tmp_path / "top.txt"
        controller.start(file=str(path))

        timers.fire()
        timers.fire()

        assert path.read_text().count("Name or Initial Func") == 2
        assert stream.getvalue() == ""

    def test_structured_log(self, controller, timers, tmp_path):
        path = tmp_path / "top.jsonl"
        controller.start(file=str(path))
        assert controller.status()["format"] is OutputFormat.STRUCTURED

        timers.fire()
        timers.fire()

        reports = controller.load()
        assert len(reports) == 2
        assert controller.load(path) == reports
        assert reports[-1] == controller.report

    def test_load_without_log(self, controller):
        assert controller.load() is None

    def test_load_missing_file(self, controller, tmp_path):
        with pytest.raises(InvalidFile):
            controller.load(tmp_path / "missing.jsonl")

    def test_write_failure_is_not_fatal(self, controller, timers, tmp_path):
        controller.start(file=str(tmp_path))

        timers.fire()
        timers.fire()

        assert controller.state is State.RUNNING
        assert controller.report is not None
        assert controller.status(raw=True)["counters"]["ticks"] == 2

    def test_closed_stream_keeps_loop_alive(self, provider, timers, executor):
        closed = io.StringIO()
        closed.close()
        ctl = Controller(
            provider,
            MonitorConfig(interval=100),
            timer_factory=timers,
            executor=executor,
            stream=closed,
        )
        ctl.start()

        assert timers.fire() is True
        assert not ctl.is_collecting
        assert ctl.report is not None

        assert timers.fire() is True
        assert provider.passes == 2
        assert ctl.state is State.RUNNING

    def test_failing_stream_keeps_loop_alive(self, provider, timers, executor):
        class BrokenStream(io.StringIO):
            def write(self, text):
                raise RuntimeError("stream broken")

        ctl = Controller(
            provider,
            MonitorConfig(interval=100),
            timer_factory=timers,
            executor=executor,
            stream=BrokenStream(),
        )
        ctl.start()

        timers.fire()

        assert not ctl.is_collecting
        assert ctl.report is not None
        assert timers.fire() is True
        assert provider.passes == 2

    def test_reporting_disabled(self, controller, stream, timers):
        controller.start(reporting=False)

        timers.fire()

        assert controller.report is not None
        assert stream.getvalue() == ""

    def test_sort_is_applied_at_render_time(self, controller, stream, timers):
        controller.start(sort="msgq")

        timers.fire()

        lines = stream.getvalue().splitlines()
        assert lines[8].startswith("<0.2.0>")
        assert controller.report.processes[0].pid == "<0.1.0>"


class TestOptions:
    """Tests for set_options and status."""

    def test_set_options(self, controller):
        config = controller.set_options(sort="memory", human=False)

        assert config.sort == "memory"
        assert controller.status()["human"] is False

    def test_invalid_sort_leaves_state_unchanged(self, controller):
        before = controller.status(raw=True)

        with pytest.raises(InvalidSortField):
            controller.set_options(sort="bogus", interval=1)

        assert controller.status(raw=True) == before

    def test_file_options(self, controller):
        controller.set_options(file="test")
        assert (controller.status()["file"], controller.status()["format"]) == (
            "test",
            OutputFormat.TEXT,
        )

        controller.set_options(file="test.jsonl")
        assert controller.status()["format"] is OutputFormat.STRUCTURED

    def test_status_hides_counters(self, controller):
        assert "counters" not in controller.status()

    def test_raw_status(self, controller, timers):
        controller.start()
        timers.fire()

        counters = controller.status(raw=True)["counters"]

        assert counters["procs"] == 2
        assert counters["total_reductions"] == 1500
        assert counters["previous_samples"] == 2
        assert counters["collecting"] is False


class TestInFlight:
    """Tests for overlapping ticks with a real worker thread."""

    def test_at_most_one_collection(self, provider, timers):
        provider.gate = threading.Event()
        config = MonitorConfig(interval=100, reporting=False)
        ctl = Controller(provider, config, timer_factory=timers)
        try:
            ctl.start()
            assert timers.fire() is True
            assert timers.fire() is False
            assert ctl.is_collecting

            provider.gate.set()
            ctl.wait(timeout=5.0)

            assert provider.passes == 1
            assert not ctl.is_collecting
            assert timers.fire() is True
            ctl.wait(timeout=5.0)
            assert provider.passes == 2
        finally:
            provider.gate.set()
            ctl.shutdown()

    def test_pause_lets_collection_finish(self, provider, timers):
        provider.gate = threading.Event()
        ctl = Controller(provider, MonitorConfig(reporting=False), timer_factory=timers)
        try:
            ctl.start()
            timers.fire()
            ctl.pause()

            provider.gate.set()
            report = ctl.wait(timeout=5.0)

            assert report is not None
            assert ctl.report is report
            assert ctl.state is State.PAUSED
        finally:
            provider.gate.set()
            ctl.shutdown()

    def test_stop_does_not_refill_cache(self, provider, timers):
        provider.gate = threading.Event()
        ctl = Controller(provider, MonitorConfig(reporting=False), timer_factory=timers)
        try:
            ctl.start()
            timers.fire()
            ctl.stop()

            provider.gate.set()
            ctl.wait(timeout=5.0)

            assert ctl.report is not None
            assert ctl.status(raw=True)["counters"]["previous_samples"] == 0
        finally:
            provider.gate.set()
            ctl.shutdown()


class TestRealTimers:
    """Tests using threading timers and short intervals."""

    def test_thread_timer_is_daemon(self):
        timer = thread_timer(10.0, lambda: None)

        assert timer.daemon is True
        assert timer.name == "runtop-timer"

    def test_first_interval_then_pause(self, tmp_path):
        provider = FakeProvider(raw(1, 100), raw(2, 50), total=150)
        path = tmp_path / "log.jsonl"
        ctl = Controller(provider, MonitorConfig(interval=100, first_interval=10, file=str(path)))
        try:
            ctl.start()
            time.sleep(0.05)
            ctl.pause()
            ctl.wait(timeout=2.0)

            assert len(ctl.load()) == 1

            time.sleep(0.15)
            ctl.tick()
            ctl.wait(timeout=2.0)

            assert len(ctl.load()) == 1
            assert ctl.load() == ctl.load(path)
        finally:
            ctl.shutdown()

    def test_pause_and_restart(self, tmp_path):
        provider = FakeProvider(raw(1, 100), total=100)
        ctl = Controller(provider, MonitorConfig(interval=100, first_interval=10))
        try:
            ctl.start(file=str(tmp_path / "log.jsonl"))
            time.sleep(0.05)
            ctl.pause()
            ctl.wait(timeout=2.0)
            assert ctl.status()["interval"] == 100

            ctl.start()
            time.sleep(0.06)
            ctl.pause()
            ctl.wait(timeout=2.0)

            assert len(ctl.load()) == 2
        finally:
            ctl.shutdown()
