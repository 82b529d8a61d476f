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
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from logging.handlers import TimedRotatingFileHandler
from typing import List, Optional, Tuple, TypeVar, Union

import yaml

from intervalutils import duration as durations
from intervalutils._inner_util import _resolve_log_level
from intervalutils.duration import Duration
from intervalutils.exceptions import InvalidConfigError
from intervalutils.interval import DEFAULT_START_MODE, ErrorHandler, Interval, StartMode, WorkFunction
from intervalutils.metrics import IntervalMetrics
from intervalutils.threading import CancellationToken

T = TypeVar("T")


class TimeIntervalConfig(yaml.YAMLObject):
    """
    Configuration parameter for setting a time interval, such as ``250ms``, ``3s``, ``1m``, ``2h`` or ``1d``. Bare
    numbers are read as seconds.
    """

    def __init__(self, expression: Union[str, int, float]) -> None:
        self._interval, self._expression = TimeIntervalConfig._parse_expression(expression)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TimeIntervalConfig):
            return NotImplemented
        return self._interval == other._interval

    def __hash__(self) -> int:
        return hash(self._interval)

    @classmethod
    def _parse_expression(cls, expression: Union[str, int, float]) -> Tuple[float, str]:
        # First, try to parse pure number and assume seconds
        try:
            interval = float(expression)
        except ValueError:
            pass
        else:
            if interval < 0:
                raise InvalidConfigError(f"Negative time interval {expression}")
            return interval, f"{expression}s"

        match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)", str(expression).strip())
        if not match:
            raise InvalidConfigError(f"Invalid interval pattern: {expression}")

        number, unit = match.groups()
        numeric_unit = {"ms": 0.001, "s": 1, "m": 60, "h": 60 * 60, "d": 60 * 60 * 24}[unit]

        return float(number) * numeric_unit, str(expression)

    @property
    def seconds(self) -> float:
        return self._interval

    @property
    def milliseconds(self) -> float:
        return self._interval * 1000

    @property
    def timedelta(self) -> timedelta:
        return timedelta(seconds=self._interval)

    def __float__(self) -> float:
        return float(self._interval)

    def __str__(self) -> str:
        return self._expression

    def __repr__(self) -> str:
        return self._expression


class DurationType(Enum):
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    FIBONACCI = "fibonacci"
    JITTERED = "jittered"
    DECORRELATED_JITTER = "decorrelated-jitter"
    STEPS = "steps"


@dataclass
class StepConfig:
    threshold: int
    duration: TimeIntervalConfig


@dataclass
class DurationConfig:
    """
    Configuration of the delay between ticks, either a fixed delay or one of the backoff strategies in the
    ``duration`` module. Which of the other fields are required depends on the type:

     * constant:                value
     * linear:                  initial, increment
     * exponential:             initial, max (optional)
     * fibonacci:               initial
     * jittered:                initial, max (optional), jitter-factor (optional)
     * decorrelated-jitter:     initial, max
     * steps:                   steps
    """

    type: DurationType = DurationType.CONSTANT
    value: Optional[TimeIntervalConfig] = None
    initial: Optional[TimeIntervalConfig] = None
    increment: Optional[float] = None
    max: Optional[TimeIntervalConfig] = None
    jitter_factor: float = 0.1
    steps: List[StepConfig] = field(default_factory=list)

    def _require(self, name: str, value: Optional[T]) -> T:
        if value is None:
            raise InvalidConfigError(f'Duration of type {self.type.value} requires "{name.replace("_", "-")}"')
        return value

    def create_duration(self) -> Duration:
        """
        Create the duration policy described by this config.

        Raises:
            InvalidConfigError: If a field required by the duration type is missing.
        """
        max_duration = self.max.seconds if self.max is not None else None

        match self.type:
            case DurationType.CONSTANT:
                return durations.constant(self._require("value", self.value).seconds)

            case DurationType.LINEAR:
                return durations.linear(
                    self._require("initial", self.initial).seconds, self._require("increment", self.increment)
                )

            case DurationType.EXPONENTIAL:
                return durations.exponential(self._require("initial", self.initial).seconds, max_duration)

            case DurationType.FIBONACCI:
                return durations.fibonacci(self._require("initial", self.initial).seconds)

            case DurationType.JITTERED:
                return durations.jittered(
                    self._require("initial", self.initial).seconds, max_duration, self.jitter_factor
                )

            case DurationType.DECORRELATED_JITTER:
                return durations.decorrelated_jitter(
                    self._require("initial", self.initial).seconds, self._require("max", max_duration)
                )

            case DurationType.STEPS:
                if not self.steps:
                    raise InvalidConfigError('Duration of type steps requires at least one entry in "steps"')
                return durations.steps([(step.threshold, step.duration.seconds) for step in self.steps])

        raise InvalidConfigError(f"Unknown duration type {self.type}")


@dataclass
class _ConsoleLoggingConfig:
    level: str = "INFO"


@dataclass
class _FileLoggingConfig:
    path: str
    level: str = "INFO"
    retention: int = 7


@dataclass
class LoggingConfig:
    """
    Logging settings, such as log levels and path to log file
    """

    console: Optional[_ConsoleLoggingConfig] = None
    file: Optional[_FileLoggingConfig] = None

    def setup_logging(self, suppress_console: bool = False) -> None:
        """
        Sets up the default logger in the logging package to be configured as defined in this config object

        Args:
            suppress_console: Don't log to console regardless of config.
        """
        fmt = logging.Formatter(
            "%(asctime)s.%(msecs)03d UTC [%(levelname)-8s] %(threadName)s - %(message)s",
            "%Y-%m-%d %H:%M:%S",
        )
        # Set logging to UTC
        fmt.converter = time.gmtime

        root = logging.getLogger()

        if self.console and not suppress_console and not root.hasHandlers():
            console_handler = logging.StreamHandler()
            console_handler.setLevel(self._level(self.console.level))
            console_handler.setFormatter(fmt)

            root.addHandler(console_handler)

            if root.getEffectiveLevel() > console_handler.level:
                root.setLevel(console_handler.level)

        if self.file:
            file_handler = TimedRotatingFileHandler(
                filename=self.file.path,
                when="midnight",
                utc=True,
                backupCount=self.file.retention,
            )
            file_handler.setLevel(self._level(self.file.level))
            file_handler.setFormatter(fmt)

            for handler in root.handlers:
                if getattr(handler, "baseFilename", None) == file_handler.baseFilename:
                    file_handler.close()
                    return

            root.addHandler(file_handler)

            if root.getEffectiveLevel() > file_handler.level:
                root.setLevel(file_handler.level)

    @staticmethod
    def _level(level: str) -> int:
        try:
            return _resolve_log_level(level)
        except KeyError as e:
            raise InvalidConfigError(f"Invalid log level {level}") from e


@dataclass
class IntervalConfig:
    """
    Configuration of an interval: its duration policy, start mode and logging.

    .. code-block:: yaml

        duration:
            type: exponential
            initial: 500ms
            max: 1m
        start: immediate
        logging:
            console:
                level: INFO
    """

    duration: DurationConfig
    start: StartMode = DEFAULT_START_MODE
    logging: Optional[LoggingConfig] = None

    def create_interval(
        self,
        work: WorkFunction,
        on_error: Optional[ErrorHandler] = None,
        name: Optional[str] = None,
        cancellation_token: Optional[CancellationToken] = None,
        metrics: Optional[IntervalMetrics] = None,
    ) -> Interval:
        """
        Create an (unstarted) interval running ``work`` as configured.
        """
        return Interval(
            work=work,
            duration=self.duration.create_duration(),
            start=self.start,
            on_error=on_error,
            name=name,
            cancellation_token=cancellation_token,
            metrics=metrics,
        )

