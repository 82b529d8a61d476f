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
Module containing duration strategies for intervals.

A duration strategy maps the counter of a tick to the delay (in seconds) before that tick. Any of these can be given as
the ``duration`` of an ``Interval`` or one of the helpers:

.. code-block:: python

    interval = Interval(work=poll_source, duration=duration.exponential(0.1, 30))

All strategies are pure functions of the counter, except ``decorrelated_jitter`` which remembers the previous delay.
Create a new one for every interval using it.
"""

import math
import random
from collections.abc import Callable, Iterable, Mapping, Sequence
from threading import Lock
from typing import Any, List, NamedTuple, Optional, Union

from intervalutils._inner_util import _is_number
from intervalutils.exceptions import InvalidArgumentError

DurationFunction = Callable[[int], float]
Duration = Union[float, DurationFunction]


class Step(NamedTuple):
    threshold: int
    duration: float


def constant(value: float) -> DurationFunction:
    """
    Constant duration, always returns ``value``.
    """

    def _constant(counter: int) -> float:
        return value

    return _constant


def linear(initial: float, increment: float) -> DurationFunction:
    """
    Linear backoff, ``initial + counter * increment``.

    A negative increment is allowed. Making sure the result stays non-negative for the counters in use is up to the
    caller.
    """

    def _linear(counter: int) -> float:
        return initial + counter * increment

    return _linear


def exponential(initial: float, max_duration: Optional[float] = None) -> DurationFunction:
    """
    Exponential backoff, doubles the duration for each tick.

    Args:
        initial: Duration at counter 0.
        max_duration: Upper limit of the duration. default: None (no limit). Without a limit, the duration becomes
            infinite once it leaves the float range.
    """

    def _exponential(counter: int) -> float:
        try:
            duration = math.ldexp(initial, counter)
        except OverflowError:
            # Past the float range, any cap is hit
            duration = math.copysign(math.inf, initial)
        return duration if max_duration is None else min(duration, max_duration)

    return _exponential


def fibonacci(initial: float) -> DurationFunction:
    """
    Fibonacci backoff. Both counter 0 and 1 give ``initial``, and every following duration is the sum of the two
    before it.
    """

    def _fibonacci(counter: int) -> float:
        previous, current = initial, initial
        for _ in range(2, counter + 1):
            previous, current = current, previous + current
        return current

    return _fibonacci


def jittered(initial: float, max_duration: Optional[float] = None, jitter_factor: float = 0.1) -> DurationFunction:
    """
    Exponential backoff with random noise added, to avoid many clients retrying in lockstep.

    The noise is drawn uniformly from ``[-jitter_factor * base, jitter_factor * base]`` where ``base`` is the capped
    exponential duration. The result is never negative.
    """
    base_duration = exponential(initial, max_duration)

    def _jittered(counter: int) -> float:
        base = base_duration(counter)
        jitter = random.uniform(-1, 1) * jitter_factor * base
        return max(0.0, base + jitter)

    return _jittered


class DecorrelatedJitter:
    """
    Decorrelated jitter backoff.

    Each call draws a duration uniformly from ``[0, previous * 3]``, capped at ``max_duration``, and remembers it as
    the previous duration for the next call. The first previous duration is ``initial``. The counter is ignored.

    Instances are stateful, and must not be shared between intervals. An interval attaches itself to the instance
    when constructed, and a second interval trying to use the same instance is rejected.
    """

    def __init__(self, initial: float, max_duration: float) -> None:
        self._initial = initial
        self._max = max_duration
        self._previous = initial
        self._owner: Optional[object] = None
        self._lock = Lock()

    def __call__(self, counter: int = 0) -> float:
        with self._lock:
            self._previous = min(self._max, random.uniform(0, self._previous * 3))
            return self._previous

    @property
    def previous(self) -> float:
        return self._previous

    def reset(self) -> None:
        """
        Start over from the initial duration.
        """
        with self._lock:
            self._previous = self._initial

    def attach(self, owner: object) -> None:
        with self._lock:
            if self._owner is not None and self._owner is not owner:
                raise InvalidArgumentError("A decorrelated jitter duration can not be shared between intervals")
            self._owner = owner


def decorrelated_jitter(initial: float, max_duration: float) -> DecorrelatedJitter:
    """
    Create a decorrelated jitter backoff. See ``DecorrelatedJitter``.
    """
    return DecorrelatedJitter(initial, max_duration)


def _to_step(item: Union[Step, Sequence[float], Mapping[str, Any]]) -> Step:
    if isinstance(item, Mapping):
        try:
            return Step(threshold=item["threshold"], duration=item["duration"])
        except KeyError as e:
            raise InvalidArgumentError(f"Step is missing the {e} key") from e
    # Tuples or lists, as parsed from JSON or YAML
    if isinstance(item, Sequence) and not isinstance(item, (str, bytes)) and len(item) == 2:
        return Step(*item)
    raise InvalidArgumentError(f"Invalid step {item!r}, expected a (threshold, duration) pair")


def steps(durations: Iterable[Union[Step, Sequence[float], Mapping[str, Any]]]) -> DurationFunction:
    """
    Step function, fixed durations from given counter thresholds.

    For a counter, the duration of the greatest threshold less than or equal to the counter is used. Thresholds do not
    need to be given in order. If the counter is below every threshold, the duration of the first step as given is
    used, regardless of its threshold.

    .. code-block:: python

        fn = steps([(0, 0.1), (5, 0.5), (10, 1)])
        fn(4)  # 0.1
        fn(7)  # 0.5

    Args:
        durations: Steps, as ``Step`` objects, ``(threshold, duration)`` pairs (tuples or lists) or mappings with
            ``threshold`` and ``duration`` keys.
    """
    parsed: List[Step] = [_to_step(item) for item in durations]
    if not parsed:
        raise InvalidArgumentError("At least one step is required")
    for step in parsed:
        if not _is_number(step.threshold) or not _is_number(step.duration):
            raise InvalidArgumentError(f"Invalid step {tuple(step)!r}, threshold and duration must be numbers")

    ordered = sorted(parsed, key=lambda s: s.threshold, reverse=True)
    default = parsed[0].duration

    def _steps(counter: int) -> float:
        for step in ordered:
            if counter >= step.threshold:
                return step.duration
        return default

    return _steps
