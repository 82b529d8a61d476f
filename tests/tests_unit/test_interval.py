#  Copyright 2024 Cognite AS
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

import threading
from collections.abc import Callable
from concurrent.futures import Future
from threading import Timer
from time import monotonic, sleep
from typing import Any, List, Optional
from unittest.mock import Mock

import pytest

from intervalutils import duration
from intervalutils.exceptions import IntervalStateError, InvalidArgumentError
from intervalutils.interval import Interval, StartMode, State
from intervalutils.metrics import IntervalMetrics
from intervalutils.threading import CancellationToken

T = 0.05


def resolve_later(value: Any, delay: float) -> "Future[Any]":
    future: Future[Any] = Future()
    Timer(delay, future.set_result, args=(value,)).start()
    return future


def fail_later(error: Exception, delay: float) -> "Future[Any]":
    future: Future[Any] = Future()
    Timer(delay, future.set_exception, args=(error,)).start()
    return future


@pytest.mark.parametrize(
    "kwargs",
    [
        {"work": None, "duration": 1},
        {"work": "not callable", "duration": 1},
        {"work": Mock(), "duration": None},
        {"work": Mock(), "duration": {}},
        {"work": Mock(), "duration": "1"},
        {"work": Mock(), "duration": True},
        {"work": Mock(), "duration": -1},
        {"work": Mock(), "duration": float("nan")},
        {"work": Mock(), "duration": 1, "on_error": "not callable"},
        {"work": Mock(), "duration": 1, "start": "later"},
    ],
)
def test_invalid_arguments(kwargs: dict) -> None:
    with pytest.raises(InvalidArgumentError):
        Interval(**kwargs)


def test_invalid_arguments_are_type_errors() -> None:
    with pytest.raises(TypeError, match='"work" must be callable'):
        Interval(work=None, duration=1)  # type: ignore


def test_missing_arguments() -> None:
    with pytest.raises(TypeError):
        Interval()  # type: ignore


def test_valid_arguments() -> None:
    interval = Interval(work=Mock(), duration=lambda counter: counter, start="immediate", on_error=Mock())

    assert interval.start_mode is StartMode.IMMEDIATE
    assert interval.state is State.IDLE
    assert not interval.is_running
    assert interval.counter == 0


def test_start_twice() -> None:
    interval = Interval(work=Mock(), duration=1)

    assert interval.start() is interval
    with pytest.raises(IntervalStateError, match="already running"):
        interval.start()

    interval.stop()


def test_stop_when_stopped() -> None:
    interval = Interval(work=Mock(), duration=1)

    with pytest.raises(IntervalStateError, match="already stopped"):
        interval.stop()

    interval.start()
    assert interval.stop() is interval

    with pytest.raises(IntervalStateError, match="already stopped"):
        interval.stop()


def test_is_running() -> None:
    interval = Interval(work=Mock(), duration=1)
    assert not interval.is_running

    interval.start()
    assert interval.is_running
    assert interval.state is State.RUNNING

    interval.stop()
    assert not interval.is_running
    assert interval.state is State.IDLE


def test_calls_work_on_each_tick(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    work = mock_work()
    interval = Interval(work=work, duration=T)
    interval.start()

    assert wait(lambda: work.call_count >= 3)
    interval.stop()

    assert work.counters[:3] == [1, 2, 3]


def test_stop_prevents_further_calls(mock_work: Callable[..., Any]) -> None:
    work = mock_work()
    interval = Interval(work=work, duration=0.2)

    interval.start()
    sleep(0.3)
    interval.stop()
    assert work.call_count == 1

    sleep(0.4)
    assert work.call_count == 1


def test_stop_cancels_pending_wait(mock_work: Callable[..., Any]) -> None:
    work = mock_work()
    interval = Interval(work=work, duration=60)

    interval.start()
    interval.stop()

    assert interval.join(timeout=2)
    assert work.call_count == 0


def test_auto_stop(mock_work: Callable[..., Any]) -> None:
    work = mock_work(results=[True, None, "anything", False])
    interval = Interval(work=work, duration=T)

    interval.start()

    assert interval.join(timeout=5)
    assert not interval.is_running
    assert work.counters == [1, 2, 3, 4]

    sleep(4 * T)
    assert work.call_count == 4


def test_only_false_stops(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    work = mock_work(results=[0, "", [], None, True])
    interval = Interval(work=work, duration=T / 5)

    interval.start()

    assert wait(lambda: work.call_count >= 6)
    assert interval.is_running
    interval.stop()


def test_error_without_handler(mock_work: Callable[..., Any]) -> None:
    error = ValueError("Something went wrong")
    work = mock_work(results=[error, error, error])
    interval = Interval(work=work, duration=T)

    interval.start()

    with pytest.raises(ValueError, match="Something went wrong"):
        interval.join(timeout=5)

    assert not interval.is_running
    assert interval.error is error
    assert work.call_count == 1


def test_error_handler_continues(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    work = mock_work(results=[ValueError(str(i)) for i in range(100)])
    handled: List[Exception] = []

    def on_error(error: Exception) -> bool:
        handled.append(error)
        return True

    interval = Interval(work=work, duration=T / 5, on_error=on_error)
    interval.start()

    assert wait(lambda: len(handled) >= 4)
    assert interval.is_running
    interval.stop()

    assert [str(e) for e in handled[:4]] == ["0", "1", "2", "3"]
    assert work.counters[:4] == [1, 2, 3, 4]


@pytest.mark.parametrize("verdict", [False, None, "yes", 1])
def test_error_handler_stops(mock_work: Callable[..., Any], verdict: Any) -> None:
    work = mock_work(results=[ValueError("one"), ValueError("two")])
    on_error = Mock(return_value=verdict)

    interval = Interval(work=work, duration=T, on_error=on_error)
    interval.start()

    assert interval.join(timeout=5)
    assert not interval.is_running
    assert interval.error is None
    assert work.call_count == 1
    on_error.assert_called_once()


def test_error_handler_raises(mock_work: Callable[..., Any]) -> None:
    work = mock_work(results=[ValueError("original")])

    def on_error(error: Exception) -> bool:
        raise KeyError("from handler")

    interval = Interval(work=work, duration=T, on_error=on_error)
    interval.start()

    with pytest.raises(KeyError, match="from handler"):
        interval.join(timeout=5)

    assert not interval.is_running
    assert work.call_count == 1


def test_async_error_handler(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    work = mock_work(results=[ValueError("one"), ValueError("two"), False])
    on_error = Mock(side_effect=lambda error: resolve_later(True, T))

    interval = Interval(work=work, duration=T, on_error=on_error)
    interval.start()

    assert interval.join(timeout=5)
    assert on_error.call_count == 2
    assert work.counters == [1, 2, 3]


def test_async_error_handler_rejects(mock_work: Callable[..., Any]) -> None:
    work = mock_work(results=[ValueError("original")])
    on_error = Mock(side_effect=lambda error: fail_later(KeyError("from handler"), T))

    interval = Interval(work=work, duration=T, on_error=on_error)
    interval.start()

    with pytest.raises(KeyError, match="from handler"):
        interval.join(timeout=5)


def test_waits_for_async_work() -> None:
    """
    Timeline:

    time    | 0.0  0.3  0.6  0.9  1.2  1.5  1.8  2.1
    --------|---------------------------------------
    tick    |      x              x
    work    |      |--------------|
    """
    called_times: List[float] = []

    def work(counter: int) -> "Future[bool]":
        called_times.append(monotonic())
        return resolve_later(True, 0.6)

    interval = Interval(work=work, duration=0.3)
    interval.start()

    sleep(0.75)
    assert len(called_times) == 1

    sleep(0.75)
    interval.stop()

    assert len(called_times) == 2
    assert called_times[1] - called_times[0] >= 0.85


def test_async_work_false_stops(wait: Callable[..., bool]) -> None:
    calls: List[int] = []

    def work(counter: int) -> "Future[bool]":
        calls.append(counter)
        return resolve_later(counter < 3, T)

    interval = Interval(work=work, duration=T)
    interval.start()

    assert interval.join(timeout=5)
    assert calls == [1, 2, 3]


def test_async_work_rejected() -> None:
    interval = Interval(work=lambda counter: fail_later(ValueError("rejected"), T), duration=T)
    interval.start()

    with pytest.raises(ValueError, match="rejected"):
        interval.join(timeout=5)


def test_result_after_stop_is_ignored() -> None:
    calls: List[int] = []
    pending: List["Future[bool]"] = []

    def work(counter: int) -> "Future[bool]":
        calls.append(counter)
        future: Future[bool] = Future()
        pending.append(future)
        return future

    interval = Interval(work=work, duration=T, start=StartMode.IMMEDIATE)
    interval.start()

    sleep(T * 2)
    interval.stop()
    pending[0].set_result(True)

    sleep(T * 4)
    assert calls == [1]
    assert interval.join(timeout=1)


def test_error_after_stop_is_discarded(mock_work: Callable[..., Any]) -> None:
    work = mock_work(results=[ValueError("late")], sleep_time=0.2)
    on_error = Mock(return_value=True)

    interval = Interval(work=work, duration=T, start=StartMode.IMMEDIATE, on_error=on_error)
    interval.start()

    sleep(0.1)
    interval.stop()

    assert interval.join(timeout=2)
    assert interval.error is None
    on_error.assert_not_called()
    assert work.call_count == 1


def test_immediate_start(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    work = mock_work()
    interval = Interval(work=work, duration=10, start=StartMode.IMMEDIATE)

    interval.start()

    assert wait(lambda: work.call_count == 1, timeout=1)
    interval.stop()


def test_delayed_start(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    work = mock_work()
    interval = Interval(work=work, duration=0.3, start=StartMode.DELAYED)

    start = monotonic()
    interval.start()
    sleep(0.1)
    assert work.call_count == 0

    assert wait(lambda: work.call_count == 1)
    interval.stop()

    assert work.called_times[0] - start >= 0.25


def test_duration_function_gets_counter(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    seen: List[int] = []

    def duration(counter: int) -> float:
        seen.append(counter)
        return T / 5

    work = mock_work()
    interval = Interval(work=work, duration=duration, start=StartMode.IMMEDIATE)
    interval.start()

    assert wait(lambda: work.call_count >= 4)
    interval.stop()

    # No delay is computed for the first tick of an immediate interval
    assert seen[:3] == [2, 3, 4]


def test_duration_function_error_goes_to_handler(mock_work: Callable[..., Any]) -> None:
    def duration(counter: int) -> float:
        raise RuntimeError("bad duration")

    on_error = Mock(return_value=False)
    interval = Interval(work=mock_work(), duration=duration, on_error=on_error)
    interval.start()

    assert interval.join(timeout=5)
    assert isinstance(on_error.call_args[0][0], RuntimeError)


def test_restart_resets_counter(mock_work: Callable[..., Any]) -> None:
    work = mock_work(results=[None, None, False, None, False])
    interval = Interval(work=work, duration=T)

    interval.start()
    assert interval.join(timeout=5)
    assert interval.counter == 3

    interval.start()
    assert interval.join(timeout=5)

    assert work.counters == [1, 2, 3, 1, 2]


def test_restart_while_previous_call_in_flight(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    work = mock_work(sleep_time=0.3)
    interval = Interval(work=work, duration=T, start=StartMode.IMMEDIATE)

    interval.start()
    sleep(0.1)
    interval.stop()
    interval.start()

    assert wait(lambda: work.call_count >= 2)
    sleep(0.35)
    interval.stop()

    # The first run ended with its in-flight call, the second run counts from 1
    assert work.counters[:2] == [1, 1]


def test_parent_token_cancellation(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    token = CancellationToken()
    work = mock_work()
    interval = Interval(work=work, duration=T, cancellation_token=token)

    interval.start()
    assert wait(lambda: work.call_count >= 1)

    token.cancel()

    assert not interval.is_running
    assert interval.join(timeout=2)
    with pytest.raises(IntervalStateError):
        interval.stop()


def test_context_manager(mock_work: Callable[..., Any], wait: Callable[..., bool]) -> None:
    work = mock_work()

    with Interval(work=work, duration=T) as interval:
        assert interval.is_running
        assert wait(lambda: work.call_count >= 1)

    assert not interval.is_running


def test_thread_name(wait: Callable[..., bool]) -> None:
    names: List[str] = []

    def poll_source(counter: int) -> bool:
        names.append(threading.current_thread().name)
        return False

    interval = Interval(work=poll_source, duration=T)
    interval.start()

    assert interval.join(timeout=5)
    assert names == ["IntervalPollSource"]
    assert interval.name == "poll_source"


def test_stop_from_work_function(wait: Callable[..., bool]) -> None:
    calls: List[int] = []
    interval: Optional[Interval] = None

    def work(counter: int) -> None:
        calls.append(counter)
        if counter == 2:
            assert interval is not None
            interval.stop()

    interval = Interval(work=work, duration=T)
    interval.start()

    assert interval.join(timeout=5)
    sleep(3 * T)
    assert calls == [1, 2]


def test_stop_right_before_work_skips_call(mock_work: Callable[..., Any]) -> None:
    work = mock_work()
    metrics = Mock(spec=IntervalMetrics)
    interval = Interval(work=work, duration=T, start=StartMode.IMMEDIATE, metrics=metrics)

    # Stop lands between the tick being counted and the work function being called
    metrics.tick.side_effect = lambda name: interval.stop()

    interval.start()

    assert interval.join(timeout=5)
    metrics.tick.assert_called_once()
    assert work.call_count == 0


def test_restart_resets_decorrelated_jitter() -> None:
    fn = duration.decorrelated_jitter(0.01, 100)
    while fn.previous == 0.01:
        fn(0)

    interval = Interval(work=lambda counter: False, duration=fn, start=StartMode.IMMEDIATE)
    interval.start()

    assert interval.join(timeout=5)
    assert fn.previous == 0.01
