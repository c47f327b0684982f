"""Pydantic schemas для OpenAI-compatible chat completions."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

RoleType = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """Одно сообщение диалога."""
    role: RoleType = Field(..., description="Роль автора сообщения")
    content: str = Field(..., description="Текст сообщения")


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: Optional[str] = None


class ChatUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """Ответ /chat/completions (лишние поля провайдера игнорируются)."""
    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[ChatChoice] = Field(..., description="Варианты ответа")
    usage: Optional[ChatUsage] = None

    @field_validator("choices")
    @classmethod
    def choices_not_empty(cls, v: List[ChatChoice]) -> List[ChatChoice]:
        if not v:
            raise ValueError("choices must not be empty")
        return v

    @property
    def content(self) -> str:
        return self.choices[0].message.content
