"""Async client for an Ollama-compatible model server.

Used by the intent classifier and the clarification negotiator for short,
JSON-only classification calls. All failures come back as ``LLMResponse``
objects with ``success=False``; nothing is raised to the caller.

Typical usage::

    client = LLMClient()
    resp = await client.generate("Is this prompt clear?", json_mode=True)
    data = resp.json_data()
"""

from __future__ import annotations

import json
from typing import Any

import httpx
from pydantic import BaseModel, Field


class LLMResponse(BaseModel):
    """Structured response from a generation call."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the response")
    duration_ms: float = Field(default=0.0, description="Server-side generation time in ms")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: str | None = Field(default=None, description="Error message on failure")

    def json_data(self) -> dict[str, Any] | None:
        """Parse ``text`` as a JSON object, or return ``None``."""
        if not self.success:
            return None
        try:
            data = json.loads(self.text.strip())
        except ValueError:
            return None
        return data if isinstance(data, dict) else None


class LLMClient:
    """Async client for the ``/api/generate`` endpoint."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: int = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
        )

    @staticmethod
    def _extract_text(data: dict) -> str:
        """Pull the generated text out of a non-streaming response."""
        return data.get("response", "")

    @staticmethod
    def _extract_duration_ms(data: dict) -> float:
        """Convert ``total_duration`` (nanoseconds) to milliseconds."""
        ns = data.get("total_duration", 0)
        return ns / 1_000_000.0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        prompt: str,
        system: str = "",
        json_mode: bool = False,
        temperature: float = 0.0,
        max_tokens: int = 200,
    ) -> LLMResponse:
        """Generate text from a prompt.

        Args:
            prompt: The user prompt.
            system: Optional system prompt.
            json_mode: Ask the server to constrain output to JSON.
            temperature: Sampling temperature.
            max_tokens: Upper bound on generated tokens.

        Returns:
            An ``LLMResponse`` with the generated text or an error.
        """
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }
        if system:
            payload["system"] = system
        if json_mode:
            payload["format"] = "json"

        try:
            async with self._client() as client:
                response = await client.post("/api/generate", json=payload)
                response.raise_for_status()
                data = response.json()
                return LLMResponse(
                    text=self._extract_text(data),
                    model=data.get("model", self.model),
                    duration_ms=self._extract_duration_ms(data),
                    success=True,
                )
        except httpx.ConnectError:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Cannot connect to the model server at {self.base_url}.",
            )
        except httpx.TimeoutException:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Model request timed out after {self.timeout}s.",
            )
        except httpx.HTTPStatusError as exc:
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Model server returned HTTP {exc.response.status_code}: {exc.response.text[:500]}",
            )
        except Exception as exc:  # noqa: BLE001
            return LLMResponse(
                model=self.model,
                success=False,
                error=f"Unexpected error during model generate: {exc}",
            )

    async def is_available(self) -> bool:
        """Return ``True`` if the server responds to ``/api/tags``."""
        try:
            async with self._client() as client:
                response = await client.get("/api/tags")
                return response.status_code == 200
        except Exception:  # noqa: BLE001
            return False
