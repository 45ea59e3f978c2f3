from module_agent.infrastructure.llm.anthropic_provider import AnthropicProvider
from module_agent.infrastructure.llm.base_provider import BaseLLMProvider

__all__ = ["AnthropicProvider", "BaseLLMProvider"]
