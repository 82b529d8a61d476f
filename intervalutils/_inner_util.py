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
A module containing utilities meant for use inside the interval-utils package
"""

import math
from concurrent.futures import Future, InvalidStateError
from numbers import Integral, Real
from typing import Any, TypeVar

T = TypeVar("T")


def _resolve_log_level(level: str) -> int:
    return {"NOTSET": 0, "DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40, "CRITICAL": 50}[level.upper()]


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and not math.isnan(value)


def _is_integer(value: Any) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)


def _settle(value: Any) -> Any:
    """
    Block until ``value`` is available if it is a future, and return it as is otherwise. Exceptions set on the future
    are raised.
    """
    if isinstance(value, Future):
        return value.result()
    return value


def _resolve(future: "Future[T]", value: T) -> bool:
    if future.done():
        return False
    try:
        future.set_result(value)
    except InvalidStateError:
        # Cancelled by the consumer in the meantime
        return False
    return True


def _reject(future: "Future[Any]", error: BaseException) -> bool:
    if future.done():
        return False
    try:
        future.set_exception(error)
    except InvalidStateError:
        return False
    return True
