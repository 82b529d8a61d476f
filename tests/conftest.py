from collections.abc import Callable
from threading import RLock
from time import monotonic, sleep
from typing import Any, List, Optional

import pytest


class MockWork:
    """
    Work function recording the counter and time of every call.

    Returns the values of ``results`` in order, and ``None`` once they run out. Exceptions in ``results`` are raised
    instead of returned.
    """

    def __init__(self, results: Optional[List[Any]] = None, sleep_time: float = 0) -> None:
        self.counters: List[int] = []
        self.called_times: List[float] = []
        self.results = list(results or [])
        self.sleep_time = sleep_time
        self.lock = RLock()

    def __call__(self, counter: int) -> Any:
        with self.lock:
            self.counters.append(counter)
            self.called_times.append(monotonic())
            result = self.results.pop(0) if self.results else None

        if self.sleep_time:
            sleep(self.sleep_time)
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def call_count(self) -> int:
        with self.lock:
            return len(self.counters)


def wait_until(condition: Callable[[], bool], timeout: float = 5) -> bool:
    end = monotonic() + timeout
    while monotonic() < end:
        if condition():
            return True
        sleep(0.01)
    return condition()


@pytest.fixture
def mock_work() -> Callable[..., MockWork]:
    return MockWork


@pytest.fixture
def wait() -> Callable[..., bool]:
    return wait_until
