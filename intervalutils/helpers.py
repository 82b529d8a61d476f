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
Helpers for common patterns built on ``Interval``: polling, repeating and retrying.

Every helper runs an interval in the background and returns a ``concurrent.futures.Future`` that settles once, with
either the result or the error that ended the interval. Cancelling the future stops the interval.

.. code-block:: python

    # Wait for a file to show up, checking every other second
    poll(lambda: path.exists(), 2).result(timeout=60)

    # Fetch a value, giving up after five attempts with exponential backoff
    value = retry(fetch_if_ready, 5, duration.exponential(0.5)).result()
"""

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import Future
from contextlib import suppress
from threading import Timer
from typing import Any, List, Optional, Tuple, Type, TypeVar, Union

from decorator import decorator

from intervalutils._inner_util import _is_integer, _reject, _resolve, _settle
from intervalutils.duration import Duration
from intervalutils.exceptions import AttemptLimitExceededError, InvalidArgumentError, IntervalStateError
from intervalutils.interval import Interval, StartMode, WorkFunction

_logger = logging.getLogger(__name__)

ERR_ATTEMPTS = "Attempt limit exceeded"
ERR_PIPELINE_TYPE = '"steps" must be a list of callables'
ERR_PREDICATE_TYPE = '"predicate" must be callable'

T = TypeVar("T")

StartArgument = Union[StartMode, str, None]


def _launch(future: "Future[Any]", work: WorkFunction, duration: Duration, start: StartArgument, name: str) -> Interval:
    def on_error(error: Exception) -> bool:
        _reject(future, error)
        return False

    interval = Interval(work=work, duration=duration, start=start, on_error=on_error, name=name)

    def stop_if_cancelled(done: "Future[Any]") -> None:
        if done.cancelled():
            with suppress(IntervalStateError):
                interval.stop()

    interval.start()
    future.add_done_callback(stop_if_cancelled)

    return interval


def _check_predicate(predicate: Any) -> None:
    if not callable(predicate):
        raise InvalidArgumentError(ERR_PREDICATE_TYPE)


def _settled(value: T) -> "Future[T]":
    future: Future[T] = Future()
    future.set_result(value)
    return future


def poll(predicate: Callable[[], Any], duration: Duration, start: StartArgument = None) -> "Future[None]":
    """
    Call ``predicate`` repeatedly until it returns a truthy value.

    Args:
        predicate: Function to poll. May return a future.
        duration: Delay between calls, fixed or as a duration strategy.
        start: Start mode of the underlying interval.

    Returns:
        A future resolved with ``None`` when the predicate returns a truthy value, or failed with the error raised by
        the predicate.
    """
    _check_predicate(predicate)
    future: Future[None] = Future()

    def work(counter: int) -> bool:
        if future.done():
            return False
        if _settle(predicate()):
            _resolve(future, None)
            return False
        return True

    _launch(future, work, duration, start, "poll")
    return future


def until(predicate: Callable[[], Optional[T]], duration: Duration, start: StartArgument = None) -> "Future[T]":
    """
    Call ``predicate`` repeatedly until it returns something other than ``None``.

    Args:
        predicate: Function to call. Returning ``None`` means no value is available yet. May return a future.
        duration: Delay between calls, fixed or as a duration strategy.
        start: Start mode of the underlying interval.

    Returns:
        A future resolved with the first value that is not ``None``.
    """
    _check_predicate(predicate)
    future: Future[T] = Future()

    def work(counter: int) -> bool:
        if future.done():
            return False
        value = _settle(predicate())
        if value is None:
            return True
        _resolve(future, value)
        return False

    _launch(future, work, duration, start, "until")
    return future


def times(
    predicate: Callable[[int], Any], amount: int, duration: Duration, start: StartArgument = None
) -> "Future[None]":
    """
    Call ``predicate`` a given amount of times, with the counters 1 to ``amount``.

    Args:
        predicate: Function to call with the counter. May return a future.
        amount: Number of calls. Nothing is called if zero or negative.
        duration: Delay between calls, fixed or as a duration strategy.
        start: Start mode of the underlying interval.

    Returns:
        A future resolved with ``None`` after the last call.
    """
    _check_predicate(predicate)
    if not _is_integer(amount):
        raise InvalidArgumentError('"amount" must be an integer')
    if amount <= 0:
        return _settled(None)

    future: Future[None] = Future()

    def work(counter: int) -> bool:
        if future.done():
            return False
        _settle(predicate(counter))
        if counter >= amount:
            _resolve(future, None)
            return False
        return True

    _launch(future, work, duration, start, "times")
    return future


def retry(
    predicate: Callable[[], Optional[T]], attempts: int, duration: Duration, start: StartArgument = None
) -> "Future[T]":
    """
    Call ``predicate`` until it returns something other than ``None``, at most ``attempts`` times.

    Errors raised by the predicate are not retried, they fail the future right away. Use ``retrying`` to retry
    functions that raise.

    Args:
        predicate: Function to call. Returning ``None`` means no value is available yet. May return a future.
        attempts: Maximum number of calls.
        duration: Delay between calls, fixed or as a duration strategy.
        start: Start mode of the underlying interval.

    Returns:
        A future resolved with the first value that is not ``None``, or failed with ``AttemptLimitExceededError`` when
        all attempts are used.
    """
    _check_predicate(predicate)
    if not _is_integer(attempts):
        raise InvalidArgumentError('"attempts" must be an integer')

    future: Future[T] = Future()
    if attempts < 1:
        future.set_exception(AttemptLimitExceededError(ERR_ATTEMPTS, attempts))
        return future

    def work(counter: int) -> bool:
        if future.done():
            return False
        value = _settle(predicate())
        if value is not None:
            _resolve(future, value)
            return False
        if counter >= attempts:
            _reject(future, AttemptLimitExceededError(ERR_ATTEMPTS, attempts))
            return False
        return True

    _launch(future, work, duration, start, "retry")
    return future


def pipeline(steps: Sequence[Callable[..., Any]], duration: Duration, start: StartArgument = None) -> "Future[Any]":
    """
    Run a sequence of steps, one per tick, passing the output of each step to the next.

    The first step is called without arguments, every following step is called with the output of the step before it.

    .. code-block:: python

        pipeline([read_batch, transform, upload], 1).result()

    Args:
        steps: List of step functions. A step may return a future.
        duration: Delay between steps, fixed or as a duration strategy.
        start: Start mode of the underlying interval.

    Raises:
        InvalidArgumentError: If ``steps`` is not a list of callables.

    Returns:
        A future resolved with the output of the last step, or ``None`` if there are no steps.
    """
    if isinstance(steps, (str, bytes)) or not isinstance(steps, Sequence):
        raise InvalidArgumentError(ERR_PIPELINE_TYPE)
    if not all(callable(step) for step in steps):
        raise InvalidArgumentError(ERR_PIPELINE_TYPE)

    remaining = list(steps)
    if not remaining:
        return _settled(None)

    future: Future[Any] = Future()
    value: Any = None

    def work(counter: int) -> bool:
        nonlocal value
        if future.done():
            return False

        step = remaining.pop(0)
        value = _settle(step() if counter == 1 else step(value))

        if not remaining:
            _resolve(future, value)
            return False
        return True

    _launch(future, work, duration, start, "pipeline")
    return future


def sleep(seconds: float) -> "Future[None]":
    """
    Returns a future that gets resolved after the given number of seconds.
    """
    future: Future[None] = Future()
    timer = Timer(seconds, _resolve, args=(future, None))
    timer.daemon = True
    future.add_done_callback(lambda _: timer.cancel())
    timer.start()
    return future


def retrying(
    attempts: int,
    duration: Duration,
    start: StartArgument = StartMode.IMMEDIATE,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Returns a retry decorator, calling the decorated function until it returns without raising.

    .. code-block:: python

        @retrying(attempts=5, duration=duration.jittered(0.5, 30))
        def fetch_data() -> bytes:
            ...

    Args:
        attempts: Maximum number of calls.
        duration: Delay between calls, fixed or as a duration strategy.
        start: Start mode. default: immediate, so the first attempt is not delayed.
        exceptions: Exception types to retry. Others are raised right away.

    Returns:
        A decorator. When all attempts fail, the decorated function raises the error of the last attempt.
    """

    @decorator
    def retry_decorator(f: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        errors: List[Exception] = []

        def attempt() -> Optional[Tuple[T]]:
            try:
                return (f(*args, **kwargs),)
            except exceptions as e:
                errors.append(e)
                _logger.warning(f"{e!r}, attempt {len(errors)} of {attempts}")
                return None

        try:
            return retry(attempt, attempts, duration, start).result()[0]
        except AttemptLimitExceededError:
            if errors:
                raise errors[-1] from None
            raise

    return retry_decorator
