import copy
from typing import Any, Dict, List, Optional, Union

from module_agent.domain.errors import ProviderError
from module_agent.domain.models.completion import Completion
from module_agent.infrastructure.llm.base_provider import BaseLLMProvider


def text_block(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def tool_use_block(tool_use_id: str, name: str, tool_input: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "tool_use", "id": tool_use_id, "name": name, "input": tool_input}


def completion(*blocks: Dict[str, Any], stop_reason: Optional[str] = None) -> Completion:
    if stop_reason is None:
        stop_reason = "tool_use" if any(b["type"] == "tool_use" for b in blocks) else "end_turn"
    return Completion(content=list(blocks), stop_reason=stop_reason)


class ScriptedProvider(BaseLLMProvider):
    """Replays queued completions (or raises queued ProviderErrors) and records every request"""

    def __init__(self, script: Optional[List[Union[Completion, Exception]]] = None, configured: bool = True):
        super().__init__("scripted")
        self.script = list(script or [])
        self.requests: List[Dict[str, Any]] = []
        self.configured = configured

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def create_completion(
        self,
        model: str,
        max_tokens: int,
        system_prompt: str,
        tools: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
    ) -> Completion:
        self.requests.append({
            "model": model,
            "max_tokens": max_tokens,
            "system_prompt": system_prompt,
            "tools": tools,
            "messages": copy.deepcopy(messages),
        })
        if not self.script:
            raise ProviderError("script exhausted")
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step
