import pytest

from provisio.errors import PermanentError, TransientError
from provisio.utils.retry import Backoff, retry_call
from provisio.utils.serialize import redact


def test_backoff_is_exponential_and_capped():
    b = Backoff(base=2, factor=2, cap=10)
    assert [b.delay(i) for i in range(1, 5)] == [2, 4, 8, 10]


def test_retry_call_retries_then_succeeds():
    calls, slept = [], []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise TransientError("throttled")
        return "ok"

    result, used = retry_call(
        flaky, attempts=5, backoff=Backoff(base=1), retry_on=(TransientError,), sleep=slept.append
    )
    assert (result, used) == ("ok", 3)
    assert slept == [1, 2]


def test_retry_call_propagates_non_retryable_and_last_error():
    def denied():
        raise PermanentError("AuthorizationFailed")

    with pytest.raises(PermanentError):
        retry_call(denied, attempts=3, backoff=Backoff(), retry_on=(TransientError,), sleep=lambda s: None)

    calls = []

    def always():
        calls.append(1)
        raise TransientError(f"try {len(calls)}")

    with pytest.raises(TransientError, match="try 2"):
        retry_call(always, attempts=2, backoff=Backoff(), retry_on=(TransientError,), sleep=lambda s: None)


def test_redact_prefers_longest_secret():
    assert redact("abc abcdef", ["abc", "abcdef"]) == "*** ***"
    assert redact(("abc", 3), ["abc"]) == ["***", 3]
    assert redact("nothing", []) == "nothing"
