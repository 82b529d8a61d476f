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

import time
from threading import Thread, Timer

from intervalutils.threading import CancellationToken


def test_wait_times_out() -> None:
    token = CancellationToken()

    start = time.monotonic()
    assert token.wait(0.1) is False
    assert time.monotonic() - start >= 0.09
    assert not token.is_cancelled


def test_cancel_wakes_waiter() -> None:
    token = CancellationToken()
    Timer(0.1, token.cancel).start()

    start = time.monotonic()
    assert token.wait(10) is True
    assert time.monotonic() - start < 5
    assert token.is_cancelled


def test_wait_when_cancelled() -> None:
    token = CancellationToken()
    token.cancel()
    token.cancel()

    assert token.wait(10) is True
    assert token.wait() is True


def test_parent_cancels_child() -> None:
    parent = CancellationToken()
    child = parent.create_child_token()
    grandchild = child.create_child_token()

    woken = []
    waiter = Thread(target=lambda: woken.append(grandchild.wait(10)))
    waiter.start()

    parent.cancel()
    waiter.join(5)

    assert woken == [True]
    assert child.is_cancelled
    assert grandchild.is_cancelled


def test_child_does_not_cancel_parent() -> None:
    parent = CancellationToken()
    child = parent.create_child_token()
    sibling = parent.create_child_token()

    child.cancel()

    assert child.is_cancelled
    assert not parent.is_cancelled
    assert not sibling.is_cancelled
    assert sibling.wait(0.01) is False


def test_repr() -> None:
    token = CancellationToken()
    assert "not cancelled" in repr(token)

    token.cancel()
    assert "not cancelled" not in repr(token)
