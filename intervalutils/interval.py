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

"""
Module containing the ``Interval`` class, which calls a function repeatedly with a delay between each call.

Unlike a plain timer, an interval never overlaps its calls: the delay before the next call starts only when the
previous call (and any future it returned) has completed.

.. code-block:: python

    def check_source(counter: int) -> bool:
        # Returning False stops the interval
        return fetch_new_data()

    interval = Interval(work=check_source, duration=duration.exponential(0.5, 60), start=StartMode.IMMEDIATE)
    interval.start()
    ...
    interval.stop()
"""

import logging
from concurrent.futures import Future
from enum import Enum
from threading import Event, RLock, Thread
from time import time
from types import TracebackType
from typing import Any, Callable, Optional, Type, Union

import arrow
from humps import pascalize

from intervalutils._inner_util import _is_number, _settle
from intervalutils.duration import DecorrelatedJitter, Duration
from intervalutils.exceptions import InvalidArgumentError, IntervalStateError
from intervalutils.metrics import IntervalMetrics
from intervalutils.threading import CancellationToken

_logger = logging.getLogger(__name__)

ERR_START = "Interval is already running"
ERR_STOP = "Interval is already stopped"
ERR_WORK_TYPE = '"work" must be callable'
ERR_DURATION_TYPE = '"duration" must be either a non-negative number or a callable'
ERR_ON_ERROR_TYPE = '"on_error" must be callable'
ERR_START_TYPE = '"start" must be either "immediate" or "delayed"'

WorkResult = Union[Optional[bool], Future]
WorkFunction = Callable[[int], WorkResult]
ErrorHandler = Callable[[Exception], WorkResult]


class StartMode(Enum):
    """
    When the first tick of an interval is run.
    """

    IMMEDIATE = "immediate"
    DELAYED = "delayed"


DEFAULT_START_MODE = StartMode.DELAYED


class State(Enum):
    IDLE = "idle"
    RUNNING = "running"


def parse_start_mode(start: Union[StartMode, str, None]) -> StartMode:
    if start is None:
        return DEFAULT_START_MODE
    if isinstance(start, StartMode):
        return start
    try:
        return StartMode(start)
    except ValueError as e:
        raise InvalidArgumentError(ERR_START_TYPE) from e


def _default_name(work: Callable[..., Any]) -> str:
    name = getattr(work, "__name__", "")
    if not name or name.startswith("<"):
        return "interval"
    return name


class Interval:
    """
    Calls a work function repeatedly, with a delay before each call.

    The work function is called with the counter of the current tick, starting at 1 for each ``start()``. It may
    return a ``concurrent.futures.Future``, in which case the interval waits for the future before interpreting the
    result. Returning exactly ``False`` stops the interval, any other value continues it.

    If the work function raises (or its future fails), the error handler is called with the error. Returning exactly
    ``True`` from the handler continues the interval, anything else stops it. Without an error handler, or if the
    handler itself raises, the interval stops and the error is logged, stored in ``error`` and raised from ``join()``.
    Errors from a call that finishes after the interval was stopped are discarded.

    Each run happens in its own daemon thread, so ``start()`` returns immediately.

    Args:
        work: Function to call on each tick.
        duration: Delay (in seconds) before each tick, either fixed or a function of the counter. See the
            ``duration`` module for backoff strategies.
        start: Whether the first tick runs immediately or after one delay. default: delayed.
        on_error: Error handler, called with errors raised by the work function.
        name: Name used in logs, metrics and the thread name. default: name of the work function.
        cancellation_token: Parent token. Cancelling it stops the interval.
        metrics: Metrics collection to report to.
    """

    def __init__(
        self,
        work: WorkFunction,
        duration: Duration,
        start: Union[StartMode, str, None] = DEFAULT_START_MODE,
        on_error: Optional[ErrorHandler] = None,
        *,
        name: Optional[str] = None,
        cancellation_token: Optional[CancellationToken] = None,
        metrics: Optional[IntervalMetrics] = None,
    ):
        if not callable(work):
            raise InvalidArgumentError(ERR_WORK_TYPE)

        if _is_number(duration):
            if duration < 0:  # type: ignore
                raise InvalidArgumentError(ERR_DURATION_TYPE)
        elif not callable(duration):
            raise InvalidArgumentError(ERR_DURATION_TYPE)

        if on_error is not None and not callable(on_error):
            raise InvalidArgumentError(ERR_ON_ERROR_TYPE)

        self._work = work
        self._duration = duration
        self._on_error = on_error
        self._start_mode = parse_start_mode(start)
        self.name = name or _default_name(work)
        self._parent_token = cancellation_token
        self._metrics = metrics

        if isinstance(duration, DecorrelatedJitter):
            duration.attach(self)

        self._lock = RLock()
        self._state = State.IDLE
        self._counter = 0
        self._token: Optional[CancellationToken] = None
        self._error: Optional[Exception] = None
        self._finished = Event()
        self._finished.set()

    def __repr__(self) -> str:
        cls = self.__class__
        return f"<{cls.__module__}.{cls.__qualname__} {self.name!r}: {self.state.value}, counter={self._counter}>"

    @property
    def state(self) -> State:
        with self._lock:
            self._sync_state()
            return self._state

    @property
    def is_running(self) -> bool:
        """
        ``True`` from ``start()`` until the interval is stopped, either by ``stop()`` or by itself.
        """
        return self.state is State.RUNNING

    @property
    def counter(self) -> int:
        """
        Counter of the current tick, or of the last tick if the interval is stopped.
        """
        return self._counter

    @property
    def start_mode(self) -> StartMode:
        return self._start_mode

    @property
    def error(self) -> Optional[Exception]:
        """
        The error that stopped the last run, if it was stopped by an unhandled error.
        """
        return self._error

    def start(self) -> "Interval":
        """
        Start the interval. The counter and the state of a decorrelated jitter duration are reset, and the first tick
        is scheduled.

        Raises:
            IntervalStateError: If the interval is already running.

        Returns:
            Current instance.
        """
        with self._lock:
            self._sync_state()
            if self._state is State.RUNNING:
                raise IntervalStateError(ERR_START)

            token = self._parent_token.create_child_token() if self._parent_token else CancellationToken()
            finished = Event()

            self._counter = 0
            self._error = None
            if isinstance(self._duration, DecorrelatedJitter):
                self._duration.reset()
            self._token = token
            self._finished = finished
            self._state = State.RUNNING
            if self._metrics:
                self._metrics.set_running(self.name, True)

            thread_name = f"Interval{pascalize(self.name.replace('-', '_').replace(' ', '_'))}"
            Thread(target=self._run, args=(token, finished), name=thread_name, daemon=True).start()

        _logger.debug(f"Interval {self.name} started")
        return self

    def stop(self) -> "Interval":
        """
        Stop the interval. A pending tick is cancelled, and a call in progress is allowed to complete but its result is
        ignored.

        Liveness is checked right before the work function is called, without holding the lock during the call. A
        ``stop()`` from another thread racing with that check may still see one last call start.

        Raises:
            IntervalStateError: If the interval is already stopped.

        Returns:
            Current instance.
        """
        with self._lock:
            self._sync_state()
            if self._state is not State.RUNNING:
                raise IntervalStateError(ERR_STOP)
            self._deactivate()

        _logger.debug(f"Interval {self.name} stopped after {self._counter} ticks")
        return self

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the current run to end. Must not be called from the work function or the error handler.

        Args:
            timeout: Maximum time to wait, in seconds. Wait forever if ``None``.

        Raises:
            Exception: The error that stopped the run, if it was stopped by an unhandled error.

        Returns:
            ``True`` if the run ended, ``False`` if the wait timed out.
        """
        with self._lock:
            finished = self._finished

        if not finished.wait(timeout):
            return False

        if self._error is not None:
            raise self._error
        return True

    def __enter__(self) -> "Interval":
        return self.start()

    def __exit__(
        self, exc_type: Optional[Type[BaseException]], exc_val: Optional[BaseException], exc_tb: Optional[TracebackType]
    ) -> None:
        with self._lock:
            if self.is_running:
                self.stop()

    def _sync_state(self) -> None:
        # A cancelled parent token stops the interval without a call to stop()
        if self._state is State.RUNNING and self._token is not None and self._token.is_cancelled:
            self._deactivate()

    def _deactivate(self) -> None:
        self._state = State.IDLE
        if self._token is not None:
            self._token.cancel()
        if self._metrics:
            self._metrics.set_running(self.name, False)

    def _is_live(self, token: CancellationToken) -> bool:
        with self._lock:
            return self._token is token and self._state is State.RUNNING and not token.is_cancelled

    def _next_counter(self, token: CancellationToken) -> Optional[int]:
        with self._lock:
            if not self._is_live(token):
                return None
            self._counter += 1
            return self._counter

    def _delay(self, counter: int) -> float:
        if self._start_mode is StartMode.IMMEDIATE and counter == 1:
            return 0.0
        delay = self._duration(counter) if callable(self._duration) else self._duration
        return max(float(delay), 0.0)

    def _run(self, token: CancellationToken, finished: Event) -> None:
        try:
            while True:
                counter = self._next_counter(token)
                if counter is None:
                    return

                try:
                    delay = self._delay(counter)
                except Exception as e:
                    if self._recover(token, e):
                        continue
                    return

                if delay > 0:
                    _logger.debug(f"Interval {self.name}: tick {counter} at {arrow.get(time() + delay).isoformat()}")
                    if token.wait(delay):
                        return

                if self._metrics:
                    self._metrics.tick(self.name)

                if not self._is_live(token):
                    return

                try:
                    result = _settle(self._work(counter))
                except Exception as e:
                    if self._recover(token, e):
                        continue
                    return

                if not self._is_live(token):
                    return

                if result is False:
                    _logger.debug(f"Interval {self.name} stopped by its work function on tick {counter}")
                    self._conclude(token)
                    return

        finally:
            self._conclude(token)
            finished.set()

    def _recover(self, token: CancellationToken, error: Exception) -> bool:
        """
        Run the error handler for an error from the work function.

        Returns:
            ``True`` if the interval should continue with the next tick.
        """
        if not self._is_live(token):
            _logger.debug(f"Interval {self.name} is stopped, discarding error {error!r}")
            return False

        if self._metrics:
            self._metrics.error(self.name)

        if self._on_error is None:
            self._fail(token, error)
            return False

        try:
            verdict = _settle(self._on_error(error))
        except Exception as handler_error:
            self._fail(token, handler_error)
            return False

        if not self._is_live(token):
            return False

        if verdict is True:
            _logger.warning(f"Interval {self.name}: {error!r} on tick {self._counter}, continuing")
            if self._metrics:
                self._metrics.recovery(self.name)
            return True

        _logger.info(f"Interval {self.name} stopped by its error handler after {error!r}")
        self._conclude(token)
        return False

    def _fail(self, token: CancellationToken, error: Exception) -> None:
        with self._lock:
            if not self._is_live(token):
                _logger.debug(f"Interval {self.name} is stopped, discarding error {error!r}")
                return
            self._error = error
            self._deactivate()

        _logger.error(f"Interval {self.name} stopped due to an unhandled error: {error!r}", exc_info=error)

    def _conclude(self, token: CancellationToken) -> None:
        with self._lock:
            if self._token is token and self._state is State.RUNNING:
                self._deactivate()
