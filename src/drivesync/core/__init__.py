"""核心业务逻辑."""

from drivesync.core.cancellation import CancellationRegistry
from drivesync.core.drive import DriveClient, DriveConfig
from drivesync.core.engine import ProjectSyncEngine
from drivesync.core.repository import SyncRepository
from drivesync.core.retry import RetryPolicy
from drivesync.core.sync_scheduler import SyncScheduler

__all__ = [
    "CancellationRegistry",
    "DriveClient",
    "DriveConfig",
    "ProjectSyncEngine",
    "RetryPolicy",
    "SyncRepository",
    "SyncScheduler",
]
