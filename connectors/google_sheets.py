"""
GoogleSheetsConnector — read, write and create spreadsheets through the
Sheets v4 REST API.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import quote

from connectors.base import tool
from connectors.google import SHEETS_API, GoogleConnector, move_to_folder
from connectors.http import ProviderClient

logger = logging.getLogger(__name__)


def _as_strings(rows: List[List[Any]]) -> List[List[str]]:
    return [[str(cell) for cell in row] for row in rows]


class GoogleSheetsConnector(GoogleConnector):

    @property
    def name(self) -> str:
        return "google-sheets"

    @property
    def display_name(self) -> str:
        return "Google Sheets"

    @property
    def description(self) -> str:
        return "Read, write and create Google Sheets spreadsheets."

    @property
    def icon(self) -> str:
        return "📊"

    @tool("readSheet")
    async def read_sheet(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{SHEETS_API}/{args['spreadsheetId']}/values/{quote(args['range'], safe='')}"
        data = await client.get_json(url)
        values = _as_strings(data.get("values", []))
        return {
            "values": values,
            "metadata": {
                "range": data.get("range", args["range"]),
                "totalRows": len(values),
                "totalColumns": max((len(row) for row in values), default=0),
            },
        }

    @tool("updateSheet")
    async def update_sheet(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{SHEETS_API}/{args['spreadsheetId']}/values/{quote(args['range'], safe='')}"
        data = await client.put_json(
            url,
            params={"valueInputOption": "RAW"},
            json={"range": args["range"], "values": args["values"]},
        )
        requested = sum(len(row) for row in args["values"])
        updated_cells = data.get("updatedCells", 0)
        return {
            "updatedRange": data.get("updatedRange", args["range"]),
            "updatedRows": data.get("updatedRows", 0),
            "updatedColumns": data.get("updatedColumns", 0),
            "updatedCells": updated_cells,
            "status": "success" if updated_cells >= requested else "partial_success",
        }

    @tool("createSheet")
    async def create_sheet(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        data = await client.post_json(SHEETS_API, json={"properties": {"title": args["sheetName"]}})
        spreadsheet_id = data["spreadsheetId"]
        if args.get("parentFolderId"):
            await move_to_folder(client, spreadsheet_id, args["parentFolderId"])
        logger.info("Created spreadsheet %s", spreadsheet_id)
        return {
            "spreadsheetId": spreadsheet_id,
            "spreadsheetName": data.get("properties", {}).get("title", args["sheetName"]),
            "spreadsheetUrl": data.get("spreadsheetUrl", ""),
        }

    @tool("batchUpdate")
    async def batch_update(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        body: Dict[str, Any] = {"requests": args["requests"]}
        if args.get("responseRanges"):
            body["responseRanges"] = args["responseRanges"]
        data = await client.post_json(f"{SHEETS_API}/{args['spreadsheetId']}:batchUpdate", json=body)
        return {"responses": data.get("replies", [])}
