"""测试重试策略."""

from unittest.mock import AsyncMock

import httpx
import pytest

from drivesync.core.drive import DriveApiError, DriveNotFoundError
from drivesync.core.retry import MaxRetriesExceededError, RetryPolicy, is_transient_error


class TestTransientClassification:
    """测试瞬时/永久错误分类."""

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_transient_status_codes(self, status: int) -> None:
        assert is_transient_error(DriveApiError(status, "x")) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_permanent_status_codes(self, status: int) -> None:
        assert is_transient_error(DriveApiError(status, "x")) is False

    def test_network_errors(self) -> None:
        assert is_transient_error(httpx.ConnectError("boom")) is True
        assert is_transient_error(httpx.ReadTimeout("slow")) is True

    def test_message_markers(self) -> None:
        assert is_transient_error(RuntimeError("socket hang up")) is True
        assert is_transient_error(RuntimeError("read ECONNRESET")) is True
        assert is_transient_error(RuntimeError("User Rate Limit Exceeded")) is True
        assert is_transient_error(ValueError("bad input")) is False


class TestBackoff:
    """测试退避时间计算."""

    def test_exponential_with_jitter(self) -> None:
        policy = RetryPolicy(jitter=lambda: 0.5)
        assert policy.backoff_delay(0) == 1.5
        assert policy.backoff_delay(1) == 2.5
        assert policy.backoff_delay(2) == 4.5

    def test_capped_at_max_delay(self) -> None:
        policy = RetryPolicy(jitter=lambda: 0.99)
        assert policy.backoff_delay(10) == 30.0


class TestRun:
    """测试重试执行."""

    async def test_returns_first_success(self) -> None:
        sleep = AsyncMock()
        policy = RetryPolicy(sleep=sleep)
        func = AsyncMock(return_value="ok")

        assert await policy.run("op", func) == "ok"
        assert func.await_count == 1
        sleep.assert_not_awaited()

    async def test_retries_transient_then_succeeds(self) -> None:
        sleep = AsyncMock()
        policy = RetryPolicy(max_retries=3, sleep=sleep, jitter=lambda: 0.0)
        func = AsyncMock(side_effect=[DriveApiError(503, "unavailable"), DriveApiError(429, "rate"), "ok"])

        assert await policy.run("op", func) == "ok"
        assert func.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    async def test_permanent_error_not_retried(self) -> None:
        sleep = AsyncMock()
        policy = RetryPolicy(sleep=sleep)
        func = AsyncMock(side_effect=DriveNotFoundError(404, "File not found"))

        with pytest.raises(DriveNotFoundError):
            await policy.run("op", func)
        assert func.await_count == 1
        sleep.assert_not_awaited()

    async def test_exhausted_retries(self) -> None:
        """重试耗尽抛出 MaxRetriesExceededError，并保留原始错误."""
        sleep = AsyncMock()
        policy = RetryPolicy(max_retries=2, sleep=sleep)
        error = DriveApiError(500, "backend error")
        func = AsyncMock(side_effect=error)

        with pytest.raises(MaxRetriesExceededError) as exc_info:
            await policy.run("list_files", func)

        assert func.await_count == 3
        assert sleep.await_count == 2
        assert exc_info.value.operation == "list_files"
        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is error

    async def test_zero_retries(self) -> None:
        policy = RetryPolicy(max_retries=0, sleep=AsyncMock())
        func = AsyncMock(side_effect=DriveApiError(502, "bad gateway"))

        with pytest.raises(MaxRetriesExceededError):
            await policy.run("op", func)
        assert func.await_count == 1
