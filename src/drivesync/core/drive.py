"""Google Drive v3 REST 客户端."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from drivesync.core.retry import RetryPolicy
from drivesync.utils.timeutil import parse_rfc3339, to_rfc3339

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
TOKEN_URL = "https://oauth2.googleapis.com/token"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id,name,mimeType,modifiedTime,createdTime,size,parents,webViewLink"
LIST_PAGE_SIZE = 100


class DriveError(Exception):
    """Drive 操作错误."""


class DriveAuthError(DriveError):
    """OAuth token 刷新失败."""


class DriveApiError(DriveError):
    """Drive API 返回的 HTTP 错误."""

    def __init__(self, status_code: int, reason: str) -> None:
        super().__init__(f"Drive API error {status_code}: {reason}")
        self.status_code = status_code
        self.reason = reason

    @classmethod
    def from_response(cls, response: httpx.Response) -> "DriveApiError":
        """从 HTTP 响应构造对应异常."""
        reason = response.reason_phrase
        try:
            payload = response.json()
        except ValueError:
            payload = None

        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            reason = error.get("message") or reason

        if response.status_code == 404:
            return DriveNotFoundError(response.status_code, reason)
        return cls(response.status_code, reason)


class DriveNotFoundError(DriveApiError):
    """文件或文件夹不存在（已删除）."""


@dataclass
class DriveConfig:
    """Drive OAuth2 连接配置."""

    client_id: str
    client_secret: str
    refresh_token: str


@dataclass
class DriveFile:
    """Drive 文件元数据."""

    id: str
    name: str
    mime_type: str = ""
    modified_time: datetime | None = None
    created_time: datetime | None = None
    size: int = 0
    parents: list[str] = field(default_factory=list)
    web_view_link: str | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "DriveFile":
        """解析 API 响应."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            modified_time=parse_rfc3339(data.get("modifiedTime")),
            created_time=parse_rfc3339(data.get("createdTime")),
            size=int(data.get("size") or 0),
            parents=data.get("parents", []),
            web_view_link=data.get("webViewLink"),
        )

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def view_link(self) -> str:
        """浏览器查看链接."""
        return self.web_view_link or file_view_link(self.id)


def file_view_link(file_id: str) -> str:
    return f"https://drive.google.com/file/d/{file_id}/view"


def escape_query_value(value: str) -> str:
    """转义 Drive 查询字符串中的引号."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveClient:
    """Google Drive API 客户端（所有调用经过统一重试策略）."""

    def __init__(
        self,
        config: DriveConfig,
        retry: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self.retry = retry or RetryPolicy()
        self._access_token: str | None = None
        self._client = httpx.AsyncClient(
            base_url=DRIVE_API_URL,
            timeout=30.0,
            transport=transport,
        )

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def _refresh_access_token(self) -> str:
        """用 refresh token 换取 access token."""
        response = await self._client.post(
            TOKEN_URL,
            data={
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "refresh_token": self.config.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code >= 500:
            raise DriveApiError.from_response(response)
        if response.is_error:
            msg = f"Token refresh failed: {response.status_code} {response.text[:200]}"
            raise DriveAuthError(msg)

        token = response.json().get("access_token")
        if not token:
            msg = "Token refresh failed: 响应中没有 access_token"
            raise DriveAuthError(msg)

        self._access_token = token
        logger.info("Drive access token 已刷新")
        return token

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """发送一次请求（不含重试）."""
        token = self._access_token or await self._refresh_access_token()
        response = await self._client.request(
            method,
            path,
            params=params,
            json=json,
            headers={"Authorization": f"Bearer {token}"},
        )

        if response.status_code == 401:
            # token 过期，下次调用重新刷新
            self._access_token = None
        if response.is_error:
            raise DriveApiError.from_response(response)
        return response.json()

    async def _call(
        self,
        operation: str,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await self.retry.run(
            operation,
            lambda: self._request(method, path, params=params, json=json),
        )

    async def _list_all(self, operation: str, query: str, fields: str) -> list[DriveFile]:
        """分页列出查询结果（每页单独重试）."""
        files: list[DriveFile] = []
        page_token: str | None = None

        while True:
            params: dict[str, Any] = {
                "q": query,
                "fields": f"nextPageToken,files({fields})",
                "pageSize": LIST_PAGE_SIZE,
                "supportsAllDrives": True,
                "includeItemsFromAllDrives": True,
            }
            if page_token:
                params["pageToken"] = page_token

            data = await self._call(operation, "GET", "/files", params=params)
            files.extend(DriveFile.from_api_response(f) for f in data.get("files", []))

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return files

    async def list_modified_files(self, folder_id: str, since: datetime) -> list[DriveFile]:
        """列出文件夹中 since 之后创建或修改的文件."""
        stamp = to_rfc3339(since)
        query = (
            f"(modifiedTime > '{stamp}' or createdTime > '{stamp}') "
            f"and '{escape_query_value(folder_id)}' in parents and trashed = false"
        )
        return await self._list_all("list_modified_files", query, FILE_FIELDS)

    async def list_sub_folders(self, folder_id: str) -> list[DriveFile]:
        """列出直接子文件夹."""
        query = (
            f"mimeType = '{FOLDER_MIME_TYPE}' "
            f"and '{escape_query_value(folder_id)}' in parents and trashed = false"
        )
        return await self._list_all("list_sub_folders", query, "id,name,mimeType")

    async def copy_file(self, file_id: str, dest_folder_id: str, name: str) -> DriveFile:
        """复制文件到目标文件夹."""
        data = await self._call(
            "copy_file",
            "POST",
            f"/files/{file_id}/copy",
            params={"supportsAllDrives": True, "fields": "id,name,mimeType,webViewLink"},
            json={"name": name, "parents": [dest_folder_id]},
        )
        return DriveFile.from_api_response(data)

    async def create_folder(self, name: str, parent_folder_id: str) -> DriveFile:
        """在父文件夹中创建文件夹."""
        data = await self._call(
            "create_folder",
            "POST",
            "/files",
            params={"supportsAllDrives": True, "fields": "id,name,mimeType"},
            json={
                "name": name,
                "mimeType": FOLDER_MIME_TYPE,
                "parents": [parent_folder_id],
            },
        )
        return DriveFile.from_api_response(data)

    async def find_files_by_name(self, name: str, parent_folder_id: str) -> list[DriveFile]:
        """按名称精确查找文件夹中的文件."""
        query = (
            f"name = '{escape_query_value(name)}' "
            f"and '{escape_query_value(parent_folder_id)}' in parents and trashed = false"
        )
        return await self._list_all("find_files_by_name", query, FILE_FIELDS)

    async def find_or_create_folder(self, name: str, parent_folder_id: str) -> DriveFile:
        """查找同名子文件夹，不存在则创建."""
        query = (
            f"mimeType = '{FOLDER_MIME_TYPE}' and name = '{escape_query_value(name)}' "
            f"and '{escape_query_value(parent_folder_id)}' in parents and trashed = false"
        )
        data = await self._call(
            "find_folder",
            "GET",
            "/files",
            params={
                "q": query,
                "fields": "files(id,name,mimeType)",
                "pageSize": 1,
                "supportsAllDrives": True,
                "includeItemsFromAllDrives": True,
            },
        )
        found = data.get("files", [])
        if found:
            return DriveFile.from_api_response(found[0])

        logger.info(f"创建目标文件夹: {name}")
        return await self.create_folder(name, parent_folder_id)
