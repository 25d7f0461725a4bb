# services/openai_service.py
import json
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from config import settings


class OpenAIService:
    """
    Chat completions wrapper. One instance is built at startup and shared,
    instead of a lazily created global client.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str = settings.OPENAI_TEXT_MODEL,
        temperature: float = settings.OPENAI_TEMPERATURE,
    ):
        self._client = client
        self.model = model
        self.temperature = temperature

    @classmethod
    def from_api_key(cls, api_key: str, **kwargs) -> "OpenAIService":
        return cls(AsyncOpenAI(api_key=api_key), **kwargs)

    async def run_text_analysis(
        self,
        *,
        system_prompt: str,
        user_payload: Dict[str, Any],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Generic helper for calling a chat/completions model and returning raw content string.

        - system_prompt: instructions for the assistant
        - user_payload: arbitrary dict sent as the user message (we JSON-encode it)
        - model: override model if needed; otherwise uses the configured default
        - temperature: override temperature if needed
        """
        m = model or self.model
        t = self.temperature if temperature is None else temperature

        messages: List[Dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": json.dumps(user_payload)},
        ]

        completion = await self._client.chat.completions.create(
            model=m,
            messages=messages,
            temperature=t,
        )

        return completion.choices[0].message.content or ""

    async def close(self) -> None:
        await self._client.close()
