# src/imaging/jimeng.py — v2
"""Signed submit-then-poll client for the jimeng text-to-image backend.

``generate`` never raises: every failure (transport, HTTP status, malformed
payload, timeout) is logged and reported as ``None`` so the caller can
substitute a placeholder.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import httpx

from docweaver.config.settings import Settings
from docweaver.imaging.credentials import Credentials
from docweaver.imaging.signing import sign_request
from docweaver.imaging.sizes import safe_dimension

logger = logging.getLogger(__name__)

SUBMIT_ACTION = "CVSync2AsyncSubmitTask"
RESULT_ACTION = "CVSync2AsyncGetResult"

TERMINAL_STATUSES = frozenset({"done", "success", "succeeded", "finished", "not_found", "expired"})

Path = tuple[str | int, ...]

TASK_ID_PATHS: list[Path] = [("data", "task_id"), ("Data", "TaskId"), ("task_id",)]
URL_PATHS: list[Path] = [
    ("data", "image_urls"),
    ("Result", "ImageUrls"),
    ("image_urls",),
    ("data", "url"),
    ("data", "image_url"),
    ("Result", "Url"),
    ("Result", "ImageUrl"),
    ("Data", "Url"),
    ("data", "images", 0, "url"),
    ("data", "result", "image_urls"),
]
BASE64_PATHS: list[Path] = [("data", "binary_data_base64"), ("BinaryDataBase64",)]
STATUS_PATHS: list[Path] = [("data", "status"), ("Status",), ("status",)]


def dig(value: Any, path: Path) -> Any:
    """Follow dict keys / list indexes; None as soon as a step is missing."""
    for step in path:
        if isinstance(step, int):
            if not isinstance(value, list) or len(value) <= step:
                return None
        elif not isinstance(value, dict):
            return None
        value = value[step] if isinstance(step, int) else value.get(step)
        if value is None:
            return None
    return value


def first_string(value: Any) -> str | None:
    """A non-empty string, or the first non-empty string of a list."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item.strip()
    return None


def first_match(payload: Any, paths: list[Path]) -> str | None:
    for path in paths:
        found = first_string(dig(payload, path))
        if found:
            return found
    return None


def extract_task_id(payload: Any) -> str | None:
    for path in TASK_ID_PATHS:
        value = dig(payload, path)
        if isinstance(value, (str, int)) and str(value).strip():
            return str(value).strip()
    return None


def extract_image(payload: Any) -> str | None:
    """Image URL from a result payload, or a data URL built from base64 bytes."""
    url = first_match(payload, URL_PATHS)
    if url:
        return url
    encoded = first_match(payload, BASE64_PATHS)
    if encoded:
        return f"data:image/jpeg;base64,{encoded}"
    return None


def extract_status(payload: Any) -> str:
    status = first_match(payload, STATUS_PATHS)
    return status.lower() if status else ""


class JimengImageClient:
    """Submit a text-to-image task and poll until an image appears.

    Args:
        credentials: Resolved signing key pair.
        settings: Host, region, poll cadence and timeouts.
        http_client: Optional pre-built client (tests inject a MockTransport).
        sleep: Awaitable delay between polls.
    """

    def __init__(
        self,
        credentials: Credentials,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._credentials = credentials
        self._settings = settings
        self._http = http_client
        self._sleep = sleep

    async def generate(
        self, prompt: str, width: int | None = None, height: int | None = None
    ) -> str | None:
        """Return an image URL (or data URL), or None if nothing was produced."""
        size = self._settings.image_default_size
        w = safe_dimension(width or size)
        h = safe_dimension(height or size)
        try:
            if self._http is not None:
                return await self._generate(self._http, prompt, w, h)
            async with httpx.AsyncClient(timeout=self._settings.image_http_timeout_s) as client:
                return await self._generate(client, prompt, w, h)
        except Exception as exc:
            logger.warning("Image generation failed: %s", exc)
            return None

    async def _generate(
        self, client: httpx.AsyncClient, prompt: str, width: int, height: int
    ) -> str | None:
        submit_body = {
            "req_key": self._settings.image_req_key,
            "prompt": prompt,
            "width": width,
            "height": height,
            "return_url": True,
        }
        response = await self._post(client, SUBMIT_ACTION, submit_body)
        if not response.is_success:
            logger.warning("Image submit rejected: HTTP %d", response.status_code)
            return None
        payload = _json_or_empty(response)
        task_id = extract_task_id(payload)
        if not task_id:
            logger.warning("Image submit returned no task id")
            return None

        logger.debug("Image task submitted: %s", task_id)
        return await self._poll(client, task_id)

    async def _poll(self, client: httpx.AsyncClient, task_id: str) -> str | None:
        poll_body = {
            "req_key": self._settings.image_req_key,
            "task_id": task_id,
            "req_json": json.dumps({"return_url": True}),
        }
        interval = self._settings.image_poll_interval_s
        for attempt in range(1, self._settings.image_poll_attempts + 1):
            response = await self._post(client, RESULT_ACTION, poll_body)
            status_code = response.status_code
            if status_code == 429 or status_code >= 500:
                logger.debug("Image poll %d: HTTP %d, retrying", attempt, status_code)
                await self._sleep(interval)
                continue
            if not response.is_success:
                logger.warning("Image poll rejected: HTTP %d", status_code)
                return None

            payload = _json_or_empty(response)
            image = extract_image(payload)
            if image:
                return image
            status = extract_status(payload)
            if status in TERMINAL_STATUSES:
                logger.warning("Image task %s ended without image (status=%s)", task_id, status)
                return None
            await self._sleep(interval)

        logger.warning("Image task %s timed out after %d polls", task_id, self._settings.image_poll_attempts)
        return None

    async def _post(
        self, client: httpx.AsyncClient, action: str, body: dict[str, Any]
    ) -> httpx.Response:
        signed = sign_request(
            action,
            json.dumps(body, ensure_ascii=False),
            self._credentials,
            host=self._settings.image_host,
            region=self._settings.image_region,
            service=self._settings.image_service,
            version=self._settings.image_api_version,
        )
        return await client.post(signed.url, headers=signed.headers, content=signed.body)


def _json_or_empty(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}
