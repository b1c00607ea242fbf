"""
GoogleDocsConnector — read, edit and create documents through the Docs v1
REST API (title and location changes go through Drive).
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from connectors.base import tool
from connectors.google import DOCS_API, DRIVE_API, GoogleConnector, move_to_folder
from connectors.http import ProviderClient

logger = logging.getLogger(__name__)


def _simplify_content(body: Dict[str, Any]) -> List[Dict[str, str]]:
    """Flatten a Docs body into ``{text, type}`` blocks, skipping blank ones."""
    blocks: List[Dict[str, str]] = []
    for item in body.get("content", []):
        paragraph = item.get("paragraph")
        if paragraph is None:
            continue
        text = "".join(
            element.get("textRun", {}).get("content", "")
            for element in paragraph.get("elements", [])
        )
        if not text.strip():
            continue
        style = paragraph.get("paragraphStyle", {}).get("namedStyleType", "")
        if paragraph.get("bullet"):
            kind = "list"
        elif "HEADING" in style:
            kind = "heading"
        else:
            kind = "paragraph"
        blocks.append({"text": text, "type": kind})
    return blocks


def _end_index(body: Dict[str, Any]) -> int:
    return max((item.get("endIndex", 0) for item in body.get("content", [])), default=1)


async def _insert_text(client: ProviderClient, document_id: str, text: str) -> None:
    await client.post_json(
        f"{DOCS_API}/{document_id}:batchUpdate",
        json={"requests": [{"insertText": {"location": {"index": 1}, "text": text}}]},
    )


class GoogleDocsConnector(GoogleConnector):

    @property
    def name(self) -> str:
        return "google-docs"

    @property
    def display_name(self) -> str:
        return "Google Docs"

    @property
    def description(self) -> str:
        return "Read, edit and create Google Docs documents."

    @property
    def icon(self) -> str:
        return "📄"

    @tool("readDocument")
    async def read_document(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        doc = await client.get_json(f"{DOCS_API}/{args['documentId']}")
        return {
            "title": doc.get("title", ""),
            "content": _simplify_content(doc.get("body", {})),
        }

    @tool("editDocument")
    async def edit_document(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        document_id = args["documentId"]
        doc = await client.get_json(f"{DOCS_API}/{document_id}")

        title = args.get("title")
        if title and title != doc.get("title", ""):
            await client.patch_json(f"{DRIVE_API}/{document_id}", json={"name": title})

        content = args.get("content")
        if content:
            # The final newline of a document cannot be deleted
            end = _end_index(doc.get("body", {})) - 1
            if end > 1:
                await client.post_json(
                    f"{DOCS_API}/{document_id}:batchUpdate",
                    json={"requests": [{"deleteContentRange": {"range": {"startIndex": 1, "endIndex": end}}}]},
                )
            await _insert_text(client, document_id, content)

        parents: Optional[List[str]] = None
        if args.get("parentFolderId"):
            parents = await move_to_folder(client, document_id, args["parentFolderId"])

        doc = await client.get_json(f"{DOCS_API}/{document_id}")
        if parents is None:
            current = await client.get_json(f"{DRIVE_API}/{document_id}", params={"fields": "parents"})
            parents = current.get("parents", [])

        return {
            "documentId": document_id,
            "title": doc.get("title", ""),
            "revisionId": doc.get("revisionId", ""),
            "parents": parents,
        }

    @tool("createDocument")
    async def create_document(self, client: ProviderClient, args: Dict[str, Any]) -> Dict[str, Any]:
        doc = await client.post_json(DOCS_API, json={"title": args.get("title") or "New Document"})
        document_id = doc["documentId"]

        if args.get("parentFolderId"):
            await move_to_folder(client, document_id, args["parentFolderId"])
        if args.get("content"):
            await _insert_text(client, document_id, args["content"])

        logger.info("Created document %s", document_id)
        return {
            "documentId": document_id,
            "title": doc.get("title", ""),
            "revisionId": doc.get("revisionId", ""),
        }
