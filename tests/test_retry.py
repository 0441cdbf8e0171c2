import pytest

from vibe.client.errors import OfflineError
from vibe.client.retry import retry_with_backoff

pytestmark = pytest.mark.anyio


class Flaky:
    def __init__(self, failures: int, error=RuntimeError):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return "ok"


@pytest.fixture
def sleeps():
    delays = []

    async def sleep(delay):
        delays.append(delay)

    sleep.delays = delays
    return sleep


@pytest.mark.parametrize("failures", [0, 1, 2])
async def test_succeeds_after_transient_failures(sleeps, failures):
    op = Flaky(failures)
    assert await retry_with_backoff(op, max_attempts=3, sleep=sleeps) == "ok"
    assert op.calls == failures + 1


async def test_reraises_last_error_after_exhausting_attempts(sleeps):
    op = Flaky(5)
    with pytest.raises(RuntimeError, match="failure 3"):
        await retry_with_backoff(op, max_attempts=3, sleep=sleeps)
    assert op.calls == 3
    assert sleeps.delays == [1.0, 2.0]


async def test_delays_scale_with_base_delay(sleeps):
    op = Flaky(3)
    await retry_with_backoff(op, max_attempts=4, base_delay=0.5, sleep=sleeps)
    assert sleeps.delays == [0.5, 1.0, 2.0]


async def test_offline_is_not_retried(sleeps):
    op = Flaky(1, error=OfflineError)
    with pytest.raises(OfflineError):
        await retry_with_backoff(op, sleep=sleeps)
    assert op.calls == 1
    assert sleeps.delays == []


async def test_rejects_zero_attempts(sleeps):
    with pytest.raises(ValueError):
        await retry_with_backoff(Flaky(0), max_attempts=0, sleep=sleeps)
