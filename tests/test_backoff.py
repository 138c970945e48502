import pytest

from pollbot.telegram.backoff import (
    BackoffPolicy,
    is_rate_limited,
    is_server_error,
    parse_retry_after,
    retry_after_header,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Too Many Requests: retry after 7", 7),
        ("Retry After: 7 seconds", 7),
        ("retry after 12", 12),
        ("Flood control exceeded. RETRY AFTER 30", 30),
        ("Bad Request: chat not found", None),
        ("retry  after 7", 7),
        ("retry\nafter 7", 7),
        ("retry after: seconds=7", 7),
        ("retry after soon", None),
        ("please retry after the outage (code 502)", None),
        ("retry afterwards 5", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_retry_after(text: str | None, expected: int | None) -> None:
    assert parse_retry_after(text) == expected


def test_retry_after_header() -> None:
    assert retry_after_header({"retry-after": " 4 "}) == 4.0
    assert retry_after_header({"retry-after": "later"}) is None
    assert retry_after_header({"retry-after": "-1"}) is None
    assert retry_after_header({}) is None


def test_status_classification() -> None:
    assert is_rate_limited(429)
    assert not is_rate_limited(400)
    assert is_server_error(500)
    assert is_server_error(599)
    assert not is_server_error(499)
    assert not is_server_error(200)


def test_next_delay_doubles_from_base() -> None:
    policy = BackoffPolicy(base_delay=0.5, max_attempts=5)
    assert [policy.next_delay(attempt) for attempt in range(1, 5)] == [
        0.5,
        1.0,
        2.0,
        4.0,
    ]


def test_hint_overrides_schedule() -> None:
    policy = BackoffPolicy()
    assert policy.next_delay(4, hint=3) == 3.0
    assert policy.next_delay(1, hint=0) == 0.0


def test_can_retry_counts_attempts() -> None:
    policy = BackoffPolicy(max_attempts=3)
    assert policy.can_retry(1)
    assert policy.can_retry(2)
    assert not policy.can_retry(3)


def test_single_attempt_policy_never_retries() -> None:
    assert not BackoffPolicy(max_attempts=1).can_retry(1)


@pytest.mark.parametrize(
    "kwargs", [{"max_attempts": 0}, {"base_delay": -0.1}]
)
def test_invalid_policy_rejected(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(**kwargs)
