from __future__ import annotations

from itertools import islice

import pytest

from mprdb.retry import Backoff, send_with_retry, should_retry_http_status

NO_JITTER = Backoff(jitter_ratio=0)


def _responses(*outcomes):
    calls = {"count": 0}
    pending = list(outcomes)

    def send() -> tuple[int, bytes]:
        calls["count"] += 1
        outcome = pending.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return send, calls


def test_send_with_retry_retries_network_errors() -> None:
    send, calls = _responses(ConnectionError("reset"), TimeoutError("slow"), (200, b"{}"))

    assert send_with_retry(send, attempts=3, sleep=lambda _: None) == (200, b"{}")
    assert calls["count"] == 3


def test_send_with_retry_reraises_last_network_error() -> None:
    send, calls = _responses(ConnectionError("down"), ConnectionError("still down"))

    with pytest.raises(ConnectionError, match="still down"):
        send_with_retry(send, attempts=2, sleep=lambda _: None)
    assert calls["count"] == 2


def test_send_with_retry_does_not_retry_other_errors() -> None:
    send, calls = _responses(KeyError("bug"), (200, b"{}"))

    with pytest.raises(KeyError):
        send_with_retry(send, attempts=3, sleep=lambda _: None)
    assert calls["count"] == 1


def test_send_with_retry_retries_retryable_statuses() -> None:
    send, calls = _responses((503, b""), (429, b""), (200, b"{}"))
    pauses: list[float] = []

    assert send_with_retry(send, attempts=3, backoff=NO_JITTER, sleep=pauses.append) == (200, b"{}")
    assert calls["count"] == 3
    assert pauses == [0.2, 0.4]


def test_send_with_retry_returns_last_response_when_exhausted() -> None:
    send, calls = _responses((502, b"a"), (502, b"b"))

    assert send_with_retry(send, attempts=2, sleep=lambda _: None) == (502, b"b")
    assert calls["count"] == 2


def test_send_with_retry_returns_client_errors_at_once() -> None:
    send, calls = _responses((409, b"dup"), (200, b"{}"))

    assert send_with_retry(send, attempts=3, sleep=lambda _: None) == (409, b"dup")
    assert calls["count"] == 1


def test_backoff_doubles_up_to_ceiling() -> None:
    assert list(islice(Backoff(0.5, 2.0, 0).pauses(), 4)) == [0.5, 1.0, 2.0, 2.0]


def test_backoff_jitter_stays_in_window() -> None:
    for pause in islice(Backoff(1.0, 1.0, 0.25).pauses(), 50):
        assert 0.75 <= pause <= 1.25


def test_should_retry_http_status() -> None:
    assert should_retry_http_status(429) is True
    assert should_retry_http_status(502) is True
    assert should_retry_http_status(503) is True
    assert should_retry_http_status(504) is True
    assert should_retry_http_status(400) is False
    assert should_retry_http_status(409) is False
