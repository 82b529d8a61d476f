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
Repeated execution of synchronous or future-returning functions, with backoff strategies and helpers for polling,
retrying and staged pipelines.
"""

__version__ = "1.0.0"

from . import duration
from .exceptions import (
    AttemptLimitExceededError,
    IntervalError,
    IntervalStateError,
    InvalidArgumentError,
    InvalidConfigError,
)
from .helpers import pipeline, poll, retry, retrying, sleep, times, until
from .interval import DEFAULT_START_MODE, Interval, StartMode, State
from .threading import CancellationToken

__all__ = [
    "DEFAULT_START_MODE",
    "AttemptLimitExceededError",
    "CancellationToken",
    "Interval",
    "IntervalError",
    "IntervalStateError",
    "InvalidArgumentError",
    "InvalidConfigError",
    "StartMode",
    "State",
    "duration",
    "pipeline",
    "poll",
    "retry",
    "retrying",
    "sleep",
    "times",
    "until",
]
