"""Share a document as a GitHub Gist."""
from __future__ import annotations

import asyncio
import logging

import requests

from lmv import config
from lmv.errors import UpstreamServiceError

logger = logging.getLogger("lmv.share")

GITHUB_API_VERSION = "2022-11-28"


def is_configured() -> bool:
    return bool(config.GITHUB_TOKEN)


def _post_gist(filename: str, content: str, public: bool) -> dict:
    try:
        response = requests.post(
            f"{config.GITHUB_API_URL}/gists",
            headers={
                "Authorization": f"Bearer {config.GITHUB_TOKEN}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": GITHUB_API_VERSION,
            },
            json={
                "description": f"Shared via lmv: {filename}",
                "public": public,
                "files": {filename: {"content": content}},
            },
            timeout=config.SHARE_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.error(f"GitHub API request failed: {exc}")
        raise UpstreamServiceError("Failed to create gist", status_code=502) from exc

    if not response.ok:
        logger.error(f"GitHub API error ({response.status_code}): {response.text}")
        raise UpstreamServiceError("Failed to create gist", status_code=response.status_code)

    try:
        payload = response.json()
    except ValueError as exc:
        raise UpstreamServiceError("Failed to create gist", status_code=502) from exc
    if not isinstance(payload, dict) or not payload.get("html_url"):
        raise UpstreamServiceError("Failed to create gist", status_code=502)
    return payload


async def create_gist(filename: str, content: str, public: bool = True) -> tuple[str, str]:
    """Create a gist off the event loop; return ``(html_url, id)``.

    Raises:
        UpstreamServiceError: the request failed or GitHub rejected it.
    """
    payload = await asyncio.to_thread(_post_gist, filename, content, public)
    logger.info(f"Created gist {payload.get('id')} for {filename}")
    return str(payload["html_url"]), str(payload.get("id") or "")
