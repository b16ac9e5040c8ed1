"""Resource listing/reading views for protocol handlers.

The protocol layer turns these dicts into its list/read responses and
maps :class:`~crawl_cache.exceptions.ResourceNotFoundError` to its
"resource not found" error.
"""

from __future__ import annotations

from typing import Any

from crawl_cache.resources.protocols import IResourceStorage


async def list_resources(storage: IResourceStorage) -> list[dict[str, Any]]:
    """Describe every live resource (no content bodies)."""
    return [
        {
            "uri": resource.uri,
            "name": resource.name,
            "mimeType": resource.mime_type,
            "description": resource.description,
        }
        for resource in await storage.list()
    ]


async def read_resource(storage: IResourceStorage, uri: str) -> dict[str, Any]:
    """Read one resource into a ``contents`` payload. Raises ResourceNotFoundError."""
    resource = await storage.read(uri)
    return {
        "contents": [
            {
                "uri": resource.uri,
                "mimeType": resource.mime_type,
                "text": resource.text,
            }
        ]
    }
