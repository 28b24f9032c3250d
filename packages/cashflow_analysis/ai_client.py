"""Document-AI collaborator: protocol and OpenAI Responses API implementation.

The pipeline talks to the collaborator only through :class:`DocumentAIClient`,
so tests and alternative backends can supply their own implementation.
Both calls return the raw model text; decoding and validation happen in
:mod:`cashflow_analysis.parsing`. Deadlines are enforced by the caller, which
cancels the awaited call on expiry.

No client is created at import time; :class:`OpenAIDocumentClient` builds its
``AsyncOpenAI`` instance on first use (reading ``OPENAI_API_KEY`` then).
"""

from __future__ import annotations

import base64
from typing import Any, Protocol

from openai import AsyncOpenAI

from . import prompting
from .config import DEFAULT_MODEL
from .parsing import extract_response_text


class DocumentAIClient(Protocol):
    async def extract_transactions(
        self,
        *,
        filename: str,
        mime_type: str,
        data: bytes | None = None,
        text: str | None = None,
    ) -> str:
        """Return delimited transaction lines for one statement.

        Exactly one of ``data`` (image bytes) and ``text`` (text layer of a
        document) is provided.
        """
        ...

    async def categorize_chunk(self, payload: str, *, housing_payment: float) -> str:
        """Return the model text for one chunk categorization request."""
        ...


def _create_client() -> AsyncOpenAI:
    return AsyncOpenAI()


class OpenAIDocumentClient:
    """:class:`DocumentAIClient` backed by the OpenAI Responses API."""

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        client: AsyncOpenAI | None = None,
        max_output_tokens: int = 16_000,
    ) -> None:
        self.model = model
        self.max_output_tokens = max_output_tokens
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = _create_client()
        return self._client

    async def extract_transactions(
        self,
        *,
        filename: str,
        mime_type: str,
        data: bytes | None = None,
        text: str | None = None,
    ) -> str:
        if (data is None) == (text is None):
            raise ValueError("extract_transactions requires exactly one of data/text")

        instructions = prompting.build_extraction_instructions()
        user_input: Any
        if text is not None:
            user_input = f"{instructions}\n\nSTATEMENT ({filename}):\n{text}"
        else:
            encoded = base64.b64encode(data or b"").decode("ascii")
            user_input = [
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": instructions},
                        {"type": "input_image", "image_url": f"data:{mime_type};base64,{encoded}"},
                    ],
                }
            ]

        resp = await self.client.responses.create(
            model=self.model,
            input=user_input,
            temperature=0.0,
            max_output_tokens=self.max_output_tokens,
        )
        return extract_response_text(resp)

    async def categorize_chunk(self, payload: str, *, housing_payment: float) -> str:
        resp = await self.client.responses.create(
            model=self.model,
            instructions=prompting.build_system_instructions(),
            input=prompting.build_categorization_prompt(payload, housing_payment=housing_payment),
            text={"format": {"type": "json_object"}},
            temperature=0.1,
            max_output_tokens=self.max_output_tokens,
        )
        return extract_response_text(resp)


__all__ = ["DocumentAIClient", "OpenAIDocumentClient"]
