"""状态常量."""


class ProjectStatus:
    """项目状态."""

    ACTIVE = "active"
    PAUSED = "paused"
    ERROR = "error"


class SessionStatus:
    """同步会话状态（running 为中间态，其余为终态）."""

    RUNNING = "running"
    SUCCESS = "success"
    INTERRUPTED = "interrupted"
    ERROR = "error"
    WARNING = "warning"
    # 未持久化：并发保护拒绝执行
    SKIPPED = "skipped"


class LastSyncStatus:
    """项目最近一次同步状态."""

    SUCCESS = "success"
    INTERRUPTED = "interrupted"
    ERROR = "error"
    PENDING = "pending"
    RUNNING = "running"


class FileStatus:
    """单文件同步结果."""

    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class Trigger:
    """触发来源."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"


FAILED_SYNC_STATUSES = frozenset({LastSyncStatus.ERROR, LastSyncStatus.INTERRUPTED})
