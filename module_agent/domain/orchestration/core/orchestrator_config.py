from pydantic import BaseModel, Field


class OrchestratorConfig(BaseModel):
    """Bounds and model selection for the conversation round loop"""
    model: str = "claude-sonnet-4-5-20250929"
    max_output_tokens: int = Field(default=4096, ge=1)
    max_tool_rounds: int = Field(default=10, ge=1, description="Provider calls per invocation")
    max_history_messages: int = Field(default=20, ge=1, description="History window replayed to the provider")
