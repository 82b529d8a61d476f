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
Cancellation primitive used to time and interrupt interval runs.
"""

from threading import Condition
from time import monotonic
from typing import Optional


class CancellationToken:
    """
    Abstraction for a hierarchical cancellation token.

    Every run of an ``Interval`` owns one token. Waiting on the token is the timer of the run, and cancelling it wakes
    the waiting thread immediately. Use ``create_child_token`` to create a token that is cancelled when the parent is
    cancelled, but can be cancelled alone without affecting the parent token.
    """

    def __init__(self, condition: Optional[Condition] = None) -> None:
        self._cv: Condition = condition or Condition()
        self._is_cancelled_int: bool = False
        self._parent: Optional["CancellationToken"] = None

    def __repr__(self) -> str:
        cls = self.__class__
        status = "cancelled" if self.is_cancelled else "not cancelled"
        return f"<{cls.__module__}.{cls.__qualname__} at {id(self):#x}: {status}>"

    @property
    def is_cancelled(self) -> bool:
        """
        ``True`` if the token has been cancelled, or if some parent token has been cancelled.
        """
        return self._is_cancelled_int or self._parent is not None and self._parent.is_cancelled

    def cancel(self) -> None:
        """
        Cancel the token, waking up any threads waiting on it.
        """
        if self.is_cancelled:
            return

        with self._cv:
            self._is_cancelled_int = True
            self._cv.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the token is cancelled or the timeout has passed.

        Args:
            timeout: Maximum time to wait, in seconds. Wait forever if ``None``.

        Returns:
            ``True`` if the token was cancelled, ``False`` if the wait timed out.
        """
        endtime = None
        if timeout is not None:
            endtime = monotonic() + timeout

        with self._cv:
            while not self.is_cancelled:
                if endtime is None:
                    self._cv.wait()
                    continue

                remaining_time = endtime - monotonic()
                if remaining_time <= 0.0:
                    return False
                self._cv.wait(remaining_time)

        return True

    def create_child_token(self) -> "CancellationToken":
        child = CancellationToken(self._cv)
        child._parent = self
        return child
