"""同步结果通知 - Google Chat webhook 卡片."""

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from drivesync.models.status import SessionStatus
from drivesync.models.sync import SyncSession

logger = logging.getLogger(__name__)

CARD_TITLE = "DriveSync Sync Report"
MAX_ERROR_LINES = 10


def summary_emoji(sessions: Sequence[SyncSession]) -> str:
    """有错误为红色，有中断为黄色，否则绿色."""
    statuses = {s.status for s in sessions}
    if SessionStatus.ERROR in statuses:
        return "🔴"
    if SessionStatus.INTERRUPTED in statuses:
        return "🟡"
    return "🟢"


def build_summary_card(sessions: Sequence[SyncSession], run_id: str) -> dict[str, Any]:
    """构建一次批量运行的汇总卡片."""
    success = sum(
        1 for s in sessions if s.status in (SessionStatus.SUCCESS, SessionStatus.WARNING)
    )
    errors = [s for s in sessions if s.status == SessionStatus.ERROR]
    interrupted = sum(1 for s in sessions if s.status == SessionStatus.INTERRUPTED)
    total_files = sum(s.files_count for s in sessions)

    widgets: list[dict[str, Any]] = [
        {
            "keyValue": {
                "topLabel": "Tổng dự án",
                "content": str(len(sessions)),
                "bottomLabel": (
                    f"{success} thành công | {len(errors)} lỗi | {interrupted} ngắt"
                ),
            }
        },
        {
            "keyValue": {
                "topLabel": "Files đã sync",
                "content": str(total_files),
            }
        },
    ]
    sections: list[dict[str, Any]] = [{"widgets": widgets}]

    if errors:
        lines = [
            f"• {s.project_name or s.project_id}: {s.error_message or 'Unknown error'}"
            for s in errors[:MAX_ERROR_LINES]
        ]
        sections.append(
            {
                "header": "⚠️ Chi tiết lỗi",
                "widgets": [{"textParagraph": {"text": "\n".join(lines)}}],
            }
        )

    return {
        "cards": [
            {
                "header": {
                    "title": f"{summary_emoji(sessions)} {CARD_TITLE}",
                    "subtitle": run_id,
                },
                "sections": sections,
            }
        ]
    }


class WebhookNotifier:
    """向 webhook 发送同步汇总."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._client = httpx.AsyncClient(timeout=10.0, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def send_sync_summary(
        self, webhook_url: str, sessions: Sequence[SyncSession], run_id: str
    ) -> bool:
        """发送汇总卡片，失败只记录日志."""
        if not webhook_url:
            return False

        try:
            response = await self._client.post(
                webhook_url, json=build_summary_card(sessions, run_id)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Webhook 通知发送失败: {e}")
            return False

        logger.info(f"Webhook 通知已发送: run_id={run_id}, 项目数={len(sessions)}")
        return True
