"""
GoogleDriveConnector — list, read, upload, update and delete Drive files
through the Drive v3 REST API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from connectors.base import tool
from connectors.google import DRIVE_API, DRIVE_UPLOAD_API, GoogleConnector, move_to_folder
from connectors.http import ProviderClient

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

_LIST_FIELDS = "nextPageToken, files(id, name, mimeType, createdTime, modifiedTime, size, parents)"
_FILE_FIELDS = "id, name, mimeType, createdTime, modifiedTime, size, parents"


def _file_entry(raw: Dict[str, Any]) -> Dict[str, Any]:
    # Folders and native Google files report no size
    return {
        "id": raw.get("id", ""),
        "name": raw.get("name", ""),
        "mimeType": raw.get("mimeType", ""),
        "createdTime": raw.get("createdTime", ""),
        "modifiedTime": raw.get("modifiedTime", ""),
        "size": str(raw.get("size", "")),
        "parents": raw.get("parents", []),
    }


class GoogleDriveConnector(GoogleConnector):

    @property
    def name(self) -> str:
        return "google-drive"

    @property
    def display_name(self) -> str:
        return "Google Drive"

    @property
    def description(self) -> str:
        return "List, read, upload, update and delete files in Google Drive."

    @property
    def icon(self) -> str:
        return "📁"

    async def _list(self, client: ProviderClient, query: str, args: Dict[str, Any]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "q": query,
            "pageSize": int(args.get("pageSize") or 10),
            "fields": _LIST_FIELDS,
        }
        if args.get("pageToken"):
            params["pageToken"] = args["pageToken"]
        data = await client.get_json(DRIVE_API, params=params)
        return {
            "files": [_file_entry(f) for f in data.get("files", [])],
            "nextPageToken": data.get("nextPageToken", ""),
        }

    @tool("listFiles")
    async def list_files(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        return await self._list(client, args["query"], args)

    @tool("listFilesByFolderId")
    async def list_files_by_folder_id(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        folder_id = args["folderId"].replace("'", "\\'")
        return await self._list(client, f"'{folder_id}' in parents and trashed = false", args)

    @tool("createFolder")
    async def create_folder(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": args["folderName"], "mimeType": FOLDER_MIME_TYPE}
        if args.get("parentFolderId"):
            metadata["parents"] = [args["parentFolderId"]]
        data = await client.post_json(DRIVE_API, params={"fields": _FILE_FIELDS}, json=metadata)
        entry = _file_entry(data)
        entry.pop("size")
        return entry

    @tool("uploadFile")
    async def upload_file(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"name": args["fileName"], "mimeType": args["mimeType"]}
        if args.get("parentFolderId"):
            metadata["parents"] = [args["parentFolderId"]]
        created = await client.post_json(DRIVE_API, params={"fields": "id"}, json=metadata)
        data = await client.patch_json(
            f"{DRIVE_UPLOAD_API}/{created['id']}",
            params={"uploadType": "media", "fields": "id, name, mimeType"},
            content=args["content"].encode(),
            headers={"Content-Type": args["mimeType"]},
        )
        logger.info("Uploaded Drive file %s", created["id"])
        return {"id": data.get("id", created["id"]), "name": data.get("name", ""), "mimeType": data.get("mimeType", "")}

    @tool("readFile")
    async def read_file(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        file_id = args["fileId"]
        meta = await client.get_json(f"{DRIVE_API}/{file_id}", params={"fields": "mimeType"})
        response = await client.request("GET", f"{DRIVE_API}/{file_id}", params={"alt": "media"})
        return {"content": response.text, "mimeType": meta.get("mimeType", "")}

    @tool("updateFile")
    async def update_file(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        file_id = args["fileId"]
        await client.patch_json(f"{DRIVE_API}/{file_id}", json={"name": args["fileName"]})
        if args.get("parentFolderId"):
            await move_to_folder(client, file_id, args["parentFolderId"])
        if args.get("content") and args["mimeType"] != FOLDER_MIME_TYPE:
            await client.patch_json(
                f"{DRIVE_UPLOAD_API}/{file_id}",
                params={"uploadType": "media"},
                content=args["content"].encode(),
                headers={"Content-Type": args["mimeType"]},
            )
        data = await client.get_json(
            f"{DRIVE_API}/{file_id}", params={"fields": "id, name, mimeType, modifiedTime, size, parents"}
        )
        entry = _file_entry(data)
        entry.pop("createdTime")
        return entry

    @tool("deleteFile")
    async def delete_file(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        await client.delete(f"{DRIVE_API}/{args['fileId']}")
        logger.info("Deleted Drive file %s", args["fileId"])
        return {"success": True}
