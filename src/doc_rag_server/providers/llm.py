"""
Completion Client

Thin async client for OpenAI-compatible `/chat/completions`, in buffered and
streaming (server-sent events) form.

Failures of any kind are logged with their original cause and re-raised as
`GenerationError`, so callers only ever deal with one provider error type.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
from pydantic import BaseModel

from ..core.errors import GenerationError

logger = logging.getLogger("docrag.llm")


class TokenUsage(BaseModel):
    prompt: int = 0
    completion: int = 0
    total: int = 0


class CompletionResult(BaseModel):
    text: str
    token_usage: TokenUsage


def build_messages(
    system_prompt: str,
    user_prompt: str,
    context: Optional[str] = None,
) -> List[Dict[str, str]]:
    """
    Assemble the chat messages: system instruction, optional context as a
    second system message, then the user prompt.
    """
    messages = [{"role": "system", "content": system_prompt}]
    if context:
        messages.append({"role": "system", "content": f"Context:\n{context}"})
    messages.append({"role": "user", "content": user_prompt})
    return messages


class LLMClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._transport = transport

    def _payload(self, messages: List[Dict[str, str]], stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
    ) -> CompletionResult:
        """
        Run a buffered completion.

        Returns the assistant text plus token usage as reported by the
        provider (zeros when the provider omits usage).
        """
        payload = self._payload(build_messages(system_prompt, user_prompt, context), stream=False)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(self.url, json=payload, headers=self._headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Completion request failed (%s): %s", type(exc).__name__, exc)
            raise GenerationError("Failed to generate completion") from exc

        choices = data.get("choices") or []
        message = choices[0].get("message") if choices else None
        if not message:
            logger.error("Completion response contained no choices")
            raise GenerationError("No completion returned")

        usage = data.get("usage") or {}
        return CompletionResult(
            text=message.get("content") or "",
            token_usage=TokenUsage(
                prompt=usage.get("prompt_tokens", 0),
                completion=usage.get("completion_tokens", 0),
                total=usage.get("total_tokens", 0),
            ),
        )

    async def complete_streaming(
        self,
        system_prompt: str,
        user_prompt: str,
        context: Optional[str] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Stream a completion as text fragments, in generation order.

        The HTTP response is closed as soon as the consumer stops iterating
        (`aclose()`), so an abandoned stream does not keep reading.

        Raises
        ------
        GenerationError
            If the request fails before or during streaming, or the stream
            ends without `[DONE]` or a `finish_reason`.
        """
        payload = self._payload(build_messages(system_prompt, user_prompt, context), stream=True)
        finished = False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                async with client.stream("POST", self.url, json=payload, headers=self._headers) as resp:
                    resp.raise_for_status()
                    async for line in resp.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data == "[DONE]":
                            return

                        chunk = json.loads(data)
                        choices = chunk.get("choices") or []
                        if choices and choices[0].get("finish_reason"):
                            finished = True
                        delta = (choices[0].get("delta") or {}).get("content") if choices else None
                        if delta:
                            yield delta
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Streaming completion failed (%s): %s", type(exc).__name__, exc)
            raise GenerationError("Failed to generate streaming completion") from exc

        if not finished:
            logger.error("Streaming completion ended without a finish marker")
            raise GenerationError("Stream ended prematurely")
