"""OpenRouter chat-completions client used for natural language scheduling."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from orchestrator.config import Settings


logger = structlog.get_logger(__name__)


@dataclass
class OpenRouterConfig:
    """OpenRouter configuration."""
    api_key: str
    base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "openai/gpt-4o-mini"
    temperature: float = 0.0
    max_tokens: int = 256
    timeout: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["OpenRouterConfig"]:
        if not settings.openrouter_api_key:
            return None
        return cls(
            api_key=settings.openrouter_api_key,
            base_url=settings.openrouter_base_url,
            default_model=settings.openrouter_model,
        )


class OpenRouterProvider:
    """OpenRouter API provider."""

    def __init__(self, config: OpenRouterConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self.client = client or httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "X-Title": "Agent Orchestrator",
            },
            timeout=self.config.timeout,
        )

    async def complete(
        self,
        prompt: str,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        system_prompt: Optional[str] = None,
        **kwargs: Any
    ) -> str:
        """Get completion from OpenRouter."""
        messages: List[Dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": model or self.config.default_model,
            "messages": messages,
            "temperature": kwargs.pop("temperature", self.config.temperature),
            "max_tokens": max_tokens or self.config.max_tokens,
            **kwargs,
        }

        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except Exception as e:
            logger.error(
                "openrouter_completion_error",
                error=str(e),
                model=payload["model"]
            )
            raise

    async def close(self) -> None:
        await self.client.aclose()
