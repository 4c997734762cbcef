"""
LLM abstraction for Canvas Chat: streaming wrapper around OpenAI chat.
"""
import os
from typing import Any, AsyncIterator, Dict, List, Optional

import openai


class LLMClient:
    """Simple wrapper for OpenAI's streaming ChatCompletion API."""
    def __init__(self, model_name: str | None = None, api_key: str | None = None,
                 max_tokens: int = 4096, client: Optional[Any] = None):
        self.model_name = model_name or os.getenv("OPENAI_MODEL_NAME", "gpt-4.1-2025-04-14")
        self.max_tokens = max_tokens
        self._api_key = api_key
        self._client = client

    @property
    def client(self) -> "openai.AsyncOpenAI":
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=self._api_key or os.getenv("OPENAI_API_KEY"))
        return self._client

    async def stream_text(
        self,
        messages: List[Dict[str, Any]],
        system: str | None = None,
        **openai_kwargs: Any,
    ) -> AsyncIterator[str]:
        """Yield text deltas for *messages* as the model produces them.

        Fragment boundaries are whatever the API delivers; callers must not
        attach meaning to them.
        """
        payload = list(messages)
        if system:
            payload.insert(0, {"role": "system", "content": system})

        stream = await self.client.chat.completions.create(
            model=self.model_name,
            messages=payload,
            max_tokens=self.max_tokens,
            stream=True,
            **openai_kwargs,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
