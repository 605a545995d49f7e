"""
OWASP ZAP JSON API client.

Only the calls the Remote Poll Driver needs: start, status and results for
the spider and the active scanner.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from .errors import AdapterExecutionError

logger = logging.getLogger(__name__)


class ZapClient:
    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=min(timeout, 5))

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        query = {k: str(v) for k, v in params.items()}
        if self.api_key:
            query["apikey"] = self.api_key
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url, params=query) as response:
                    response.raise_for_status()
                    return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"ZAP request {path} failed: {e}")
            raise AdapterExecutionError(f"ZAP API request failed ({path}): {e}")
        except ValueError as e:
            raise AdapterExecutionError(f"ZAP API returned invalid JSON ({path}): {e}")

    # --- Spider ---

    async def start_spider(self, url: str, max_children: int = 10) -> str:
        data = await self._get("/JSON/spider/action/scan/", {"url": url, "maxChildren": max_children})
        return data.get("scan")

    async def spider_status(self, scan_id: str) -> str:
        data = await self._get("/JSON/spider/view/status/", {"scanId": scan_id})
        return data.get("status", "0")

    async def spider_results(self, scan_id: str) -> List[Any]:
        data = await self._get("/JSON/spider/view/results/", {"scanId": scan_id})
        return data.get("results") or []

    # --- Active scan ---

    async def start_active_scan(self, url: str) -> str:
        data = await self._get("/JSON/ascan/action/scan/", {"url": url})
        return data.get("scan")

    async def active_scan_status(self, scan_id: str) -> str:
        data = await self._get("/JSON/ascan/view/status/", {"scanId": scan_id})
        return data.get("status", "0")

    async def alerts(self, base_url: str) -> List[Any]:
        data = await self._get("/JSON/core/view/alerts/", {"baseurl": base_url})
        return data.get("alerts") or []
