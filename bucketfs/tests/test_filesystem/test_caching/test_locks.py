import threading
import time

import pytest

from bucketfs.filesystem.caching.common import LockIndex, SingleFlight


def test_lock_index():
    index = LockIndex()

    with index.lock("a"):
        with index.lock("b"):
            with index.lock("c"):
                assert index.lock_count == 3

        assert index.lock_count == 1

    assert index.lock_count == 0


def test_lock_index_nonblocking():
    index = LockIndex()

    with index.lock("a") as acquired:
        assert acquired

        result = []

        def try_lock():
            with index.lock("a", False) as acquired:
                result.append(acquired)

        t = threading.Thread(target=try_lock)
        t.start()
        t.join()

        assert result == [False]

    assert index.lock_count == 0


def test_single_flight_result():
    group = SingleFlight()

    assert group.do("a", lambda: 123) == 123
    assert group.in_flight == 0


def test_single_flight_collapses_concurrent_calls():
    group = SingleFlight()
    calls = []
    results = []

    def slow():
        calls.append(1)
        time.sleep(0.2)
        return "abc"

    def run():
        results.append(group.do("key", slow))

    threads = [threading.Thread(target=run) for _ in range(8)]

    for t in threads:
        t.start()

    for t in threads:
        t.join()

    assert len(calls) == 1
    assert results == ["abc"] * 8
    assert group.in_flight == 0


def test_single_flight_shares_errors():
    group = SingleFlight()
    started = threading.Event()
    errors = []

    def failing():
        started.set()
        time.sleep(0.2)
        raise ValueError("foo")

    def run():
        try:
            group.do("key", failing)
        except ValueError as e:
            errors.append(e)

    leader = threading.Thread(target=run)
    leader.start()
    started.wait()

    follower = threading.Thread(target=run)
    follower.start()

    leader.join()
    follower.join()

    assert len(errors) == 2
    assert errors[0] is errors[1]


def test_single_flight_retries_after_failure():
    group = SingleFlight()

    def failing():
        raise ValueError("foo")

    with pytest.raises(ValueError):
        group.do("key", failing)

    assert group.do("key", lambda: 123) == 123


def test_single_flight_independent_keys():
    group = SingleFlight()
    inner = []

    def outer():
        inner.append(group.do("b", lambda: "b"))
        return "a"

    assert group.do("a", outer) == "a"
    assert inner == ["b"]
