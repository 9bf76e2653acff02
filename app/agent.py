import os
import json
import logging
from typing import Optional

import httpx

_log = logging.getLogger("enrich.agent")

AGENT_API_URL = os.getenv("AGENT_API_URL", "http://localhost:8001/api/agent")
AGENT_API_KEY = os.getenv("AGENT_API_KEY")
ENRICHMENT_AGENT_ID = os.getenv("ENRICHMENT_AGENT_ID", "enrichment-coordinator")
EXPORT_AGENT_ID = os.getenv("EXPORT_AGENT_ID", "export-agent")
AGENT_TIMEOUT_SEC = float(os.getenv("AGENT_TIMEOUT_SEC", "60"))


class AgentClient:
    """
    Thin client for the remote agent endpoint.
    Every call returns the decoded envelope:
      { "success": bool, "response": { "result": {...} } }
    Raises httpx.HTTPError on transport/status errors and ValueError on a non-JSON body.
    Retries and timeouts beyond a single attempt are the endpoint's concern.
    """

    def __init__(
        self,
        base_url: str,
        *,
        enrichment_agent_id: str,
        export_agent_id: str,
        api_key: Optional[str] = None,
        timeout: float = 60,
    ):
        self.base_url = base_url
        self.enrichment_agent_id = enrichment_agent_id
        self.export_agent_id = export_agent_id
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def call_agent(self, message: str, agent_id: str) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            _log.info("call_agent: agent=%s bytes=%d", agent_id, len(message))
            r = await client.post(
                self.base_url,
                headers=self._headers(),
                json={"message": message, "agent_id": agent_id},
            )
            r.raise_for_status()
            data = r.json()
        if not isinstance(data, dict):
            return {"success": False, "response": None}
        return data

    async def enrich_product(self, payload: dict) -> dict:
        return await self.call_agent(json.dumps(payload, ensure_ascii=False), self.enrichment_agent_id)

    async def notify_export(self, approved_products: list) -> dict:
        message = json.dumps({"approved_products": approved_products}, ensure_ascii=False)
        return await self.call_agent(message, self.export_agent_id)


def client_from_env() -> AgentClient:
    return AgentClient(
        AGENT_API_URL,
        enrichment_agent_id=ENRICHMENT_AGENT_ID,
        export_agent_id=EXPORT_AGENT_ID,
        api_key=AGENT_API_KEY,
        timeout=AGENT_TIMEOUT_SEC,
    )
