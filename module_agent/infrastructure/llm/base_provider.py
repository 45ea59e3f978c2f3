from abc import ABC, abstractmethod
from typing import Dict, Any, List

from module_agent.domain.models.completion import Completion


class BaseLLMProvider(ABC):
    """Base class for LLM completion providers"""

    def __init__(self, name: str):
        self.name = name

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the provider credential is present"""
        pass

    @abstractmethod
    async def create_completion(
        self,
        model: str,
        max_tokens: int,
        system_prompt: str,
        tools: List[Dict[str, Any]],
        messages: List[Dict[str, Any]],
    ) -> Completion:
        """Request one completion; raises ProviderError on any provider failure"""
        pass
