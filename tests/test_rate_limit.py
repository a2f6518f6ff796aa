import pytest

from secureblog.exceptions import RateLimitError
from secureblog.rate_limit import LoginThrottle, RateLimiter


@pytest.fixture
def limiter(tmp_path, clock):
    return RateLimiter(tmp_path, clock=clock)


@pytest.fixture
def throttle(tmp_path, clock):
    return LoginThrottle(tmp_path, max_attempts=5, lockout_time=900, clock=clock)


def test_admits_exactly_n_calls_inside_window(limiter):
    results = [limiter.allow("login_203.0.113.9", 3, 60) for _ in range(4)]
    assert results == [True, True, True, False]


def test_capacity_restored_as_oldest_timestamp_ages_out(limiter, clock):
    for _ in range(3):
        assert limiter.allow("upload_alice", 3, 60)
        clock.advance(10)

    assert not limiter.allow("upload_alice", 3, 60)

    # First timestamp is now 61 seconds old, the second only 51
    clock.advance(31)
    assert limiter.allow("upload_alice", 3, 60)
    assert not limiter.allow("upload_alice", 3, 60)


def test_rejected_calls_are_not_recorded(limiter, clock):
    assert limiter.allow("key", 1, 60)
    for _ in range(5):
        assert not limiter.allow("key", 1, 60)

    clock.advance(61)
    assert limiter.allow("key", 1, 60)


def test_identifiers_are_independent(limiter):
    assert limiter.allow("login_198.51.100.1", 1, 60)
    assert limiter.allow("login_198.51.100.2", 1, 60)
    assert not limiter.allow("login_198.51.100.1", 1, 60)


def test_records_are_keyed_by_hash(limiter, tmp_path):
    limiter.allow("login_203.0.113.9", 5, 60)

    names = [path.name for path in tmp_path.iterdir()]
    assert len(names) == 1
    assert names[0].startswith("ratelimit_")
    assert "203.0.113.9" not in names[0]


def test_check_raises_when_window_full(limiter):
    limiter.check("key", 1, 600)
    with pytest.raises(RateLimitError) as excinfo:
        limiter.check("key", 1, 600)
    assert "10 minutes" in excinfo.value.message


def test_check_uses_custom_message(limiter):
    limiter.check("key", 1, 600)
    with pytest.raises(RateLimitError) as excinfo:
        limiter.check("key", 1, 600, message="Slow down")
    assert excinfo.value.message == "Slow down"


def test_lockout_after_max_failures(throttle):
    for attempt in range(1, 5):
        assert throttle.record_failure("alice") == attempt
        assert not throttle.is_locked("alice")

    throttle.record_failure("alice")
    assert throttle.is_locked("alice")
    assert not throttle.is_locked("bob")


def test_lockout_expires(throttle, clock):
    for _ in range(5):
        throttle.record_failure("alice")
    assert throttle.is_locked("alice")

    clock.advance(901)
    assert not throttle.is_locked("alice")
    # The stale record is discarded, so counting starts over
    assert throttle.record_failure("alice") == 1


def test_clear_forgets_failures(throttle):
    for _ in range(4):
        throttle.record_failure("alice")

    throttle.clear("alice")
    assert throttle.record_failure("alice") == 1
