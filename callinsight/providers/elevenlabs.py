"""ElevenLabs conversational AI API client"""

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from callinsight.config import settings
from callinsight.errors import ProviderError
from callinsight.schemas.agent import AgentConfigResult

logger = structlog.get_logger()

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, ProviderError) and exc.status_code in RETRYABLE_STATUS_CODES


class ElevenLabsClient:
    """
    Thin async client for the agent endpoints.

    Every request has its own timeout and retry budget; bulk lookups run
    concurrently up to ``max_concurrency`` requests and report a result per
    agent instead of failing as a whole.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        retry_wait=None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.elevenlabs_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.elevenlabs_base_url).rstrip("/")
        self.timeout = settings.provider_timeout_seconds if timeout is None else timeout
        self.max_attempts = max_attempts or settings.provider_max_attempts
        self.max_concurrency = max_concurrency or settings.provider_max_concurrency
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=4)
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"xi-api-key": self.api_key, "Accept": "application/json"},
            timeout=self.timeout,
            transport=self.transport,
        )

    async def get_agent_config(
        self,
        agent_id: str,
        client: Optional[httpx.AsyncClient] = None,
    ) -> Dict[str, Any]:
        """Fetch one agent's configuration, retrying transient failures"""
        if not self.api_key:
            raise ProviderError("ElevenLabs API key is not configured")

        if client is None:
            async with self._client() as owned:
                return await self.get_agent_config(agent_id, owned)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                response = await client.get(f"/v1/convai/agents/{agent_id}")
                if response.status_code >= 400:
                    logger.warning(
                        "ElevenLabs request failed",
                        agent_id=agent_id,
                        status_code=response.status_code,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise ProviderError(
                        f"ElevenLabs returned {response.status_code} for agent {agent_id}",
                        status_code=response.status_code,
                    )
                return response.json()

    async def fetch_agent_configs(self, agent_ids: List[str]) -> List[AgentConfigResult]:
        """Fetch several agent configurations concurrently, one result per id"""
        if not self.api_key:
            raise ProviderError("ElevenLabs API key is not configured")

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async with self._client() as client:

            async def fetch_one(agent_id: str) -> AgentConfigResult:
                async with semaphore:
                    try:
                        config = await self.get_agent_config(agent_id, client)
                    except (ProviderError, httpx.HTTPError, ValueError) as e:
                        return AgentConfigResult(
                            agent_id=agent_id,
                            success=False,
                            error=str(e) or type(e).__name__,
                        )
                    return AgentConfigResult(agent_id=agent_id, success=True, config=config)

            results = await asyncio.gather(*(fetch_one(agent_id) for agent_id in agent_ids))

        logger.info(
            "Fetched agent configurations",
            requested=len(agent_ids),
            failed=sum(1 for r in results if not r.success),
        )
        return list(results)


def get_elevenlabs_client() -> ElevenLabsClient:
    """FastAPI dependency"""
    return ElevenLabsClient()
