import pytest

from errors import HttpError, ProtocolFault, TransportError
from retry import RetryPolicy, calculate_delay, make_retryable, resolve_policy, with_retry


class Flaky:
    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def test_retries_retryable_status_then_succeeds():
    sleeps = []
    fn = Flaky([HttpError(503, "Service Unavailable"), HttpError(502, "Bad Gateway")])
    assert with_retry(fn, RetryPolicy(), sleep=sleeps.append) == "ok"
    assert fn.calls == 3
    assert len(sleeps) == 2


def test_network_errors_are_retried():
    fn = Flaky([TransportError("connection reset")])
    assert with_retry(fn, RetryPolicy(), sleep=lambda _: None) == "ok"
    assert fn.calls == 2


def test_non_retryable_status_raises_immediately():
    err = HttpError(404, "Not Found")
    fn = Flaky([err])
    with pytest.raises(HttpError) as exc:
        with_retry(fn, RetryPolicy(), sleep=lambda _: None)
    assert exc.value is err
    assert fn.calls == 1


def test_protocol_faults_are_never_retried():
    fn = Flaky([ProtocolFault("boom", code=1)])
    with pytest.raises(ProtocolFault):
        with_retry(fn, RetryPolicy(), sleep=lambda _: None)
    assert fn.calls == 1


def test_exhausted_retries_reraise_last_error_unchanged():
    errors = [HttpError(500, "a"), HttpError(500, "b"), HttpError(500, "c")]
    last = errors[-1]
    fn = Flaky(errors)
    with pytest.raises(HttpError) as exc:
        with_retry(fn, RetryPolicy(max_retries=2), sleep=lambda _: None)
    assert exc.value is last
    assert fn.calls == 3


def test_on_retry_called_once_per_retry_with_attempt_number():
    seen = []
    policy = RetryPolicy(on_retry=lambda attempt, err: seen.append((attempt, err.status)))
    fn = Flaky([HttpError(429, "Too Many"), HttpError(503, "Unavailable")])
    with_retry(fn, policy, sleep=lambda _: None)
    assert seen == [(1, 429), (2, 503)]


def test_delay_is_exponential_with_jitter_and_capped(monkeypatch):
    monkeypatch.setattr("retry.random.uniform", lambda a, b: b)
    policy = RetryPolicy(base_delay=0.5, max_delay=5.0)
    assert calculate_delay(0, policy) == pytest.approx(0.7)
    assert calculate_delay(2, policy) == pytest.approx(2.2)
    assert calculate_delay(10, policy) == 5.0


def test_linear_policy_uses_base_delay():
    assert calculate_delay(4, RetryPolicy(base_delay=0.25, exponential=False)) == 0.25


def test_resolve_policy_shorthand():
    assert resolve_policy(None) is None
    assert resolve_policy(False) is None
    assert resolve_policy(True).max_retries == 3
    assert resolve_policy({"max_retries": 1}).max_retries == 1


def test_make_retryable_wraps_arguments():
    attempts = []

    def fetch(x):
        attempts.append(x)
        if len(attempts) < 2:
            raise HttpError(408, "Timeout")
        return x * 2

    wrapped = make_retryable(fetch, RetryPolicy(), sleep=lambda _: None)
    assert wrapped(21) == 42
    assert attempts == [21, 21]
