"""
Workflow Webhook Client
=======================

Shared async HTTP client for the external workflow engine (n8n webhooks).
Used by notebook chat, legal chat and notebook content generation.

Every webhook is authenticated with the same shared secret, sent verbatim
in the `Authorization` header (NOTEBOOK_GENERATION_AUTH).
"""

import httpx
import logging
from typing import Optional, Dict, Any
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class WebhookCallResult:
    """Result from a webhook call"""
    status_code: int
    data: Any = None
    success: bool = True
    error: Optional[str] = None


class WorkflowWebhookClient:
    """
    Async client for workflow webhooks.

    One instance is shared per process; `close()` is called on shutdown.
    """

    def __init__(self, timeout: int = 120):
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def post(self, url: str, payload: Dict[str, Any], auth_header: str) -> WebhookCallResult:
        """
        POST a JSON payload to a webhook.

        Non-2xx responses are returned with success=False and the response
        body (truncated) in `error`; transport failures raise httpx errors.
        """
        headers = {
            "Content-Type": "application/json",
            "Authorization": auth_header,
        }

        client = await self._get_client()
        response = await client.post(url, json=payload, headers=headers)

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(f"Webhook responded with status: {response.status_code}")
            logger.error(f"Webhook error response: {response.text[:500]}")
            return WebhookCallResult(
                status_code=response.status_code,
                success=False,
                error=response.text[:500],
            )

        try:
            data = response.json()
        except ValueError:
            data = response.text

        return WebhookCallResult(status_code=response.status_code, data=data)


_client: Optional[WorkflowWebhookClient] = None


def get_webhook_client() -> WorkflowWebhookClient:
    """Get the process-wide webhook client"""
    global _client
    if _client is None:
        from .config import get_settings
        _client = WorkflowWebhookClient(timeout=get_settings().webhook_timeout)
    return _client


async def close_webhook_client():
    global _client
    if _client is not None:
        await _client.close()
        _client = None
