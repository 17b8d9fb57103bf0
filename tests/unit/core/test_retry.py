"""Tests for retry with exponential backoff."""

import pytest

from forksync.core.errors import GitCommandError, NetworkError
from forksync.core.retry import backoff_delay, retry_with_backoff


def test_backoff_delay_is_exponential_and_capped():
    delays = [backoff_delay(n, 2.0, 10.0) for n in range(6)]

    assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]


def test_succeeds_after_transient_failures():
    calls = []
    sleeps = []

    def operation():
        calls.append(1)
        if len(calls) < 3:
            raise NetworkError("timeout")
        return "fetched"

    result = retry_with_backoff(
        operation, attempts=4, backoff_factor=3.0, sleep=sleeps.append
    )

    assert result == "fetched"
    assert len(calls) == 3
    assert sleeps == [1.0, 3.0]


def test_raises_last_network_error_at_ceiling():
    errors = [NetworkError(f"attempt {n}") for n in range(3)]
    sleeps = []

    def operation():
        raise errors[len(sleeps)]

    with pytest.raises(NetworkError) as excinfo:
        retry_with_backoff(operation, attempts=3, sleep=sleeps.append)

    assert excinfo.value is errors[2]
    assert len(sleeps) == 2


def test_non_network_errors_are_not_retried():
    sleeps = []

    def operation():
        raise GitCommandError("git fetch upstream", 128, "bad refspec")

    with pytest.raises(GitCommandError):
        retry_with_backoff(operation, attempts=5, sleep=sleeps.append)

    assert sleeps == []


def test_at_least_one_attempt():
    assert retry_with_backoff(lambda: 42, attempts=0) == 42
