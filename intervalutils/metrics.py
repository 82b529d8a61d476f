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
Module containing Prometheus metrics for intervals.

Create one ``IntervalMetrics`` collection and give it to every interval that should report metrics. Each interval
reports under its own name as the ``interval`` label:

.. code-block:: python

    metrics = safe_get(IntervalMetrics)

    interval = Interval(work=poll_source, duration=5, name="poll_source", metrics=metrics)

Since Prometheus doesn't allow multiple metrics with the same name, use ``safe_get`` (or a separate registry) instead of
creating the collection more than once.
"""

from time import time
from typing import Any, Dict, Type, TypeVar

from prometheus_client import CollectorRegistry, Counter, Gauge
from prometheus_client.core import REGISTRY

_metrics_singularities: Dict[type, Any] = {}


T = TypeVar("T")


def safe_get(cls: Type[T], *args: Any, **kwargs: Any) -> T:
    """
    A factory for instances of metrics collections.

    This function creates an instance of the given class on the first call and stores it, any subsequent calls with
    the same class as argument will return the same instance.

    .. code-block:: python

        >>> a = safe_get(IntervalMetrics)  # This will create a new instance of IntervalMetrics
        >>> b = safe_get(IntervalMetrics)  # This will return the same instance
        >>> a is b
        True

    Args:
        cls: Metrics class to either create or get a cached version of

    Returns:
        An instance of given class
    """
    if cls not in _metrics_singularities:
        _metrics_singularities[cls] = cls(*args, **kwargs)

    return _metrics_singularities[cls]


class IntervalMetrics:
    """
    Collection of interval metrics.

    The collection includes the following metrics, all labelled with the interval name:
     * <prefix>_ticks_total             Number of invocations of the work function
     * <prefix>_errors_total            Number of errors raised by the work function
     * <prefix>_recoveries_total        Number of errors the error handler recovered from
     * <prefix>_running                 1 while the interval is running, 0 otherwise
     * <prefix>_last_tick_time          Timestamp (seconds) of the last invocation of the work function

    Args:
        prefix: Prefix of the metric names
        registry: Prometheus registry to register the metrics in
    """

    def __init__(self, prefix: str = "interval", registry: CollectorRegistry = REGISTRY):
        prefix = prefix.strip().replace(" ", "_")

        self.ticks = Counter(
            f"{prefix}_ticks", "Number of invocations of the work function", ["interval"], registry=registry
        )
        self.errors = Counter(
            f"{prefix}_errors", "Number of errors raised by the work function", ["interval"], registry=registry
        )
        self.recoveries = Counter(
            f"{prefix}_recoveries", "Number of errors recovered by the error handler", ["interval"], registry=registry
        )
        self.running = Gauge(f"{prefix}_running", "Whether the interval is running", ["interval"], registry=registry)
        self.last_tick = Gauge(
            f"{prefix}_last_tick_time", "Timestamp (seconds) of the last invocation", ["interval"], registry=registry
        )

    def tick(self, name: str) -> None:
        self.ticks.labels(interval=name).inc()
        self.last_tick.labels(interval=name).set(time())

    def error(self, name: str) -> None:
        self.errors.labels(interval=name).inc()

    def recovery(self, name: str) -> None:
        self.recoveries.labels(interval=name).inc()

    def set_running(self, name: str, running: bool) -> None:
        self.running.labels(interval=name).set(1 if running else 0)
