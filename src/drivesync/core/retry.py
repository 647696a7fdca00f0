"""Drive API 重试策略 - 指数退避 + 随机抖动.

瞬时错误（429/5xx、连接重置、超时）按退避重试，永久错误立即抛出，
重试耗尽时抛出 MaxRetriesExceededError.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0  # 秒
DEFAULT_MAX_DELAY = 30.0  # 秒

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# 网络层错误的消息特征
TRANSIENT_MESSAGE_MARKERS = (
    "rate limit",
    "socket hang up",
    "econnreset",
    "etimedout",
    "connection reset",
    "empty response",
)


class MaxRetriesExceededError(Exception):
    """重试次数耗尽."""

    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__(f"Max retries exceeded: {operation} ({attempts} attempts)")
        self.operation = operation
        self.attempts = attempts


def is_transient_error(error: BaseException) -> bool:
    """判断是否为可重试的瞬时错误."""
    status_code = getattr(error, "status_code", None)
    if status_code in TRANSIENT_STATUS_CODES:
        return True

    if isinstance(error, httpx.TimeoutException | httpx.NetworkError | httpx.RemoteProtocolError):
        return True

    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS)


@dataclass
class RetryPolicy:
    """统一的重试策略."""

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)
    jitter: Callable[[], float] = field(default=random.random, repr=False)

    def backoff_delay(self, attempt: int) -> float:
        """计算第 attempt 次（从 0 开始）重试前的等待秒数."""
        delay = (2**attempt) * self.base_delay + self.jitter() * self.base_delay
        return min(delay, self.max_delay)

    async def run(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """执行操作，瞬时错误时按退避重试."""
        for attempt in range(self.max_retries + 1):
            try:
                return await func()
            except Exception as e:
                if not is_transient_error(e):
                    raise

                if attempt >= self.max_retries:
                    logger.error(f"{operation}: 重试 {self.max_retries} 次后仍失败: {e}")
                    raise MaxRetriesExceededError(operation, attempt + 1) from e

                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"{operation}: 瞬时错误 ({e}), "
                    f"{delay:.1f}s 后重试 {attempt + 1}/{self.max_retries}"
                )
                await self.sleep(delay)

        # 不会到达这里
        raise MaxRetriesExceededError(operation, self.max_retries + 1)
