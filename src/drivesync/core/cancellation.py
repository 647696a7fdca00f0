"""停止信号注册表 - 协作式、轮询式取消."""

import logging
import threading

logger = logging.getLogger(__name__)


class CancellationRegistry:
    """记录被请求停止的项目 ID.

    引擎在每个文件夹开始处和每次复制前轮询 should_stop()，
    响应停止后调用 clear_stop().
    """

    def __init__(self) -> None:
        self._requested: set[str] = set()
        self._lock = threading.Lock()

    def request_stop(self, project_id: str) -> None:
        """请求停止（幂等）."""
        with self._lock:
            self._requested.add(project_id)
        logger.info(f"已请求停止项目同步: {project_id}")

    def should_stop(self, project_id: str) -> bool:
        """是否已请求停止（非阻塞）."""
        with self._lock:
            return project_id in self._requested

    def clear_stop(self, project_id: str) -> None:
        """清除停止信号（幂等）."""
        with self._lock:
            self._requested.discard(project_id)
