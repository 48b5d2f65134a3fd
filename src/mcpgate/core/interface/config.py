"""Model configuration — which LiteLLM model plans and executes."""

from typing import Any

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configuration of the reasoning model.

    ``model`` follows LiteLLM's ``provider/model_name`` convention
    (e.g. ``gemini/gemini-2.0-flash``, ``openai/gpt-4o``).
    """

    model: str
    api_key: str | None = None
    api_base: str | None = None
    temperature: float | None = None
    extra: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())

    @property
    def provider(self) -> str:
        if "/" in self.model:
            return self.model.split("/", 1)[0]
        return "openai"
