# orderbot/api_client.py
import json
import logging
from typing import Any, Dict, List, Union

import aiohttp

from .config import Settings

logger = logging.getLogger(__name__)

JsonBody = Union[Dict[str, Any], List[Any]]


class ApiError(RuntimeError):
    def __init__(self, status: int, body: str, url: str = ""):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"API {url} respondeu {status}: {body}")


class APIClient:
    """Thin aiohttp wrapper around the order-intake backend."""

    def __init__(self, settings: Settings):
        self.base_url = settings.api_base_url.rstrip("/")
        self.auth_token = settings.api_auth_token
        self.timeout = aiohttp.ClientTimeout(total=settings.api_timeout)

    def _build_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = self.auth_token
        return headers

    async def get_json(self, path: str) -> Any:
        url = f"{self.base_url}{path}"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.get(url, headers=self._build_headers()) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    logger.error("GET %s failed (%s): %s", url, resp.status, text[:500])
                    raise ApiError(resp.status, text, url)
                try:
                    return json.loads(text)
                except json.JSONDecodeError:
                    logger.warning("Non-JSON response from %s: %s", url, text[:500])
                    return None

    async def post_json(self, path: str, data: JsonBody) -> Any:
        url = f"{self.base_url}{path}"
        headers = self._build_headers()

        logger.debug("POST %s payload: %s", url, json.dumps(data, ensure_ascii=False))

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            async with session.post(url, json=data, headers=headers) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    logger.error("POST %s failed (%s): %s", url, resp.status, text)
                    raise ApiError(resp.status, text, url)
                logger.info("POST %s OK (%s)", url, resp.status)
                try:
                    return json.loads(text) if text else {}
                except json.JSONDecodeError:
                    logger.warning("Non-JSON response from %s: %s", url, text)
                    return {}

    async def create_orders(self, records: List[Dict[str, Any]]) -> Any:
        return await self.post_json("/pedido", records)

    async def upsert_customer(self, payload: Dict[str, Any]) -> Any:
        return await self.post_json("/cadastro", payload)
