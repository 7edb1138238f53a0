import os
from urllib.parse import quote

import aiohttp

DEFAULT_API_BASE_URL = "http://localhost:3001"


def default_base_url() -> str:
    return os.environ.get("AMBULANCE_API_URL") or DEFAULT_API_BASE_URL


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def build_url(base_url: str, path: str, request_id: str) -> str:
    return base_url.rstrip("/") + path.format(id=quote(request_id, safe=""))


async def error_message(response: aiohttp.ClientResponse, fallback: str) -> str:
    """Reads the ``error`` field of a failed response, falling back to a generic message"""
    try:
        data = await response.json(content_type=None)
    except (aiohttp.ContentTypeError, ValueError):
        return fallback
    if isinstance(data, dict) and isinstance(data.get("error"), str) and data["error"]:
        return data["error"]
    return fallback
