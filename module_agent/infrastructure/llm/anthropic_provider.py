from typing import Dict, Any, List, Optional

import anthropic
import structlog

from module_agent.domain.errors import ProviderError
from module_agent.domain.models.completion import Completion
from module_agent.infrastructure.llm.base_provider import BaseLLMProvider

logger = structlog.get_logger(__name__)


def _project_block(block: Any) -> Optional[Dict[str, Any]]:
    """Keep only the text and tool_use blocks, as plain provider dicts"""

    if block.type == "text":
        return {"type": "text", "text": block.text}
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return None


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Messages API adapter"""

    def __init__(self, api_key: str, client: Optional[anthropic.AsyncAnthropic] = None):
        super().__init__("anthropic")
        self.api_key = api_key
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def create_completion(
        self,
        model: str,
        max_tokens: int,
        system_prompt: str,
        tools: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
    ) -> Completion:
        try:
            response = await self.client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=system_prompt,
                tools=tools,
                messages=messages,
            )
        except anthropic.APIError as e:
            logger.error("Anthropic request failed", model=model, error=str(e))
            raise ProviderError(str(e)) from e

        content = [block for block in (_project_block(b) for b in response.content) if block]
        return Completion(content=content, stop_reason=response.stop_reason)
