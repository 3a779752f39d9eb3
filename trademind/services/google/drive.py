"""
Google Drive Backup Document Provider

DESIGN DECISION: The backup is ONE JSON file in the user's Drive,
created with the drive.file scope so the app only ever sees files it
created itself.

TRADEOFFS:
- No per-record granularity - every push rewrites the whole file
  (fine for a personal journal)
- No server-side merge - last full write wins
- The file is human-readable and can be downloaded as a plain backup

The HTTP calls are blocking (requests under google-auth), so each one
runs in a worker thread to keep the event loop responsive.
"""

import asyncio
import json
from typing import Optional
from uuid import uuid4

from trademind.services.google.client import (
    DRIVE_FILES_URL,
    DRIVE_UPLOAD_URL,
    GoogleClient,
)
from trademind.services.storage.interface import RemoteDocumentProvider, RemoteError


JSON_MIME_TYPE = "application/json"


class GoogleDriveDocumentProvider(RemoteDocumentProvider):
    """Drive v3 implementation of the remote document provider."""

    def __init__(self, client: Optional[GoogleClient] = None):
        self._client = client or GoogleClient()

    async def find_document(self, name: str) -> Optional[str]:
        return await asyncio.to_thread(self._find_document, name)

    async def create_document(self, name: str, content: str) -> str:
        return await asyncio.to_thread(self._create_document, name, content)

    async def read_document(self, handle: str) -> Optional[str]:
        return await asyncio.to_thread(self._read_document, handle)

    async def update_document(self, handle: str, content: str) -> None:
        await asyncio.to_thread(self._update_document, handle, content)

    # -- blocking implementations ---------------------------------------------

    def _find_document(self, name: str) -> Optional[str]:
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        payload = self._client.request_json(
            "GET",
            DRIVE_FILES_URL,
            operation="find backup",
            params={
                "q": f"name = '{escaped}' and trashed = false",
                "fields": "files(id, name)",
                "spaces": "drive",
            },
        )
        files = payload.get("files") or []
        if not files:
            return None
        try:
            return files[0]["id"]
        except (KeyError, TypeError, IndexError):
            raise RemoteError("find backup: listing entry carries no file id")

    def _create_document(self, name: str, content: str) -> str:
        metadata = {"name": name, "mimeType": JSON_MIME_TYPE}
        boundary = f"trademind-{uuid4().hex}"
        body = (
            f"--{boundary}\r\n"
            f"Content-Type: {JSON_MIME_TYPE}; charset=UTF-8\r\n\r\n"
            f"{json.dumps(metadata)}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {JSON_MIME_TYPE}\r\n\r\n"
            f"{content}\r\n"
            f"--{boundary}--"
        )
        payload = self._client.request_json(
            "POST",
            DRIVE_UPLOAD_URL,
            operation="create backup",
            params={"uploadType": "multipart", "fields": "id"},
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
            data=body.encode("utf-8"),
        )
        if not payload.get("id"):
            raise RemoteError("create backup: response carries no file id")
        return payload["id"]

    def _read_document(self, handle: str) -> Optional[str]:
        response = self._client.request(
            "GET",
            f"{DRIVE_FILES_URL}/{handle}",
            operation="read backup",
            params={"alt": "media"},
        )
        return response.text or None

    def _update_document(self, handle: str, content: str) -> None:
        self._client.request(
            "PATCH",
            f"{DRIVE_UPLOAD_URL}/{handle}",
            operation="update backup",
            params={"uploadType": "media"},
            headers={"Content-Type": JSON_MIME_TYPE},
            data=content.encode("utf-8"),
        )
