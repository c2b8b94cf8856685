from typing import Any, List, Literal

from pydantic import BaseModel, Field

DEFAULT_MAX_TOKENS = 4008
DEFAULT_TEMPERATURE = 0.6
DEFAULT_TOP_P = 1.0
DEFAULT_TOP_K = 40
DEFAULT_PRESENCE_PENALTY = 0.0
DEFAULT_FREQUENCY_PENALTY = 0.0

ReasoningMethod = Literal["CoD", "CoT", "Standard"]


class ChatMessage(BaseModel):
    role: str = Field(..., min_length=1)
    content: Any = ""  # plain text or provider-specific content parts

    class Config:
        extra = "allow"


class InferenceRequest(BaseModel):
    """
    Canonical outbound chat-completion payload.

    After normalization every field is present; nothing is None.
    """

    model: str = Field(..., min_length=1)
    messages: List[ChatMessage] = Field(..., min_length=1)
    max_tokens: int = DEFAULT_MAX_TOKENS
    # Sampling values go upstream as sent: wrong types are rejected, never coerced
    temperature: float = Field(DEFAULT_TEMPERATURE, strict=True)
    top_p: float = Field(DEFAULT_TOP_P, strict=True)
    top_k: int = Field(DEFAULT_TOP_K, strict=True)
    presence_penalty: float = Field(DEFAULT_PRESENCE_PENALTY, strict=True)
    frequency_penalty: float = Field(DEFAULT_FREQUENCY_PENALTY, strict=True)
    stream: bool = True

    class Config:
        frozen = True
        extra = "ignore"
