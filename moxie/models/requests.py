"""Request and response models for API endpoints."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ChatRequest(BaseModel):
    """Request model for a chat turn."""

    message: str = Field(..., min_length=1, description="User message")
    conversation_id: Optional[str] = Field(None, description="Conversation to continue")
    system_prompt: Optional[str] = Field(None, description="Replaces the default system prompt")
    persona: Optional[str] = Field(None, description="Built-in persona: default, analyst, support, data")
    provider: Optional[str] = Field(None, description="Provider name, e.g. ollama, openai, groq, anthropic")
    model: Optional[str] = Field(None, description="Model name; defaults to the provider's model")
    timeout_s: Optional[float] = Field(None, gt=0, description="Overall time limit in seconds")

    @field_validator('message')
    @classmethod
    def message_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('message cannot be empty')
        return v

    @field_validator('conversation_id', 'provider', 'model')
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v.strip() if v else v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"message": "What files are in my reports folder?", "provider": "ollama", "model": "llama3.2"},
            ]
        }
    }


class ToolCallInfo(BaseModel):
    name: str
    success: bool


class ChatResponse(BaseModel):
    message: str
    conversation_id: str
    tool_calls: List[ToolCallInfo] = Field(default_factory=list)


class PluginConfigUpdate(BaseModel):
    """Request body for updating plugin configuration."""

    config: Dict[str, Any]
