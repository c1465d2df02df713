"""
OpenAI-compatible premium provider implementation.

This module provides the OpenAICompatibleProvider class for chat-completion
endpoints (OpenAI, OpenRouter, LM Studio, vLLM, etc.). Calls are single-shot:
retries are owned by the batch translator and the sweep loop.
"""

import json
import re
from typing import Optional

import httpx

from clip_translate.config import (
    PREMIUM_API_ENDPOINT, PREMIUM_MODEL, PREMIUM_TIMEOUT, SENTINEL_SEPARATOR
)
from clip_translate.core.exceptions import ProviderAuthenticationError, ProviderResponseError
from clip_translate.core.scripts import direction_for, normalize_language
from clip_translate.prompts import generate_page_translation_prompt
from .base import TranslationProvider

_CODE_FENCE = re.compile(r'^```(?:json)?\s*(.*?)\s*```$', re.S)


class OpenAICompatibleProvider(TranslationProvider):
    """OpenAI-compatible chat-completions provider used as the premium path"""

    name = "premium"

    def __init__(self, api_endpoint: str = PREMIUM_API_ENDPOINT, model: str = PREMIUM_MODEL,
                 api_key: Optional[str] = None, timeout: float = PREMIUM_TIMEOUT,
                 separator: str = SENTINEL_SEPARATOR,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(timeout, transport)
        self.api_endpoint = api_endpoint
        self.model = model
        self.api_key = api_key
        self.separator = separator

    async def _request(self, text: str, target_lang: str, source_lang: Optional[str]) -> str:
        if not self.api_key:
            raise ProviderAuthenticationError("Premium provider API key is not configured", self.name)

        target = normalize_language(target_lang)
        source = source_lang or direction_for(target).source_language
        prompt = generate_page_translation_prompt(text, target, source, self.separator)

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            "temperature": 0,
            "stream": False,
        }

        client = await self._get_client()
        response = await client.post(self.api_endpoint, json=payload, headers=headers)
        self._raise_for_status(response)

        try:
            response_json = response.json()
            content = response_json["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(f"Malformed chat completion: {e}", self.name)

        return self.normalize_reply(content or "", batched=self.separator in text)

    def normalize_reply(self, content: str, batched: bool) -> str:
        """Turn a JSON-array batch reply back into one separator-joined string."""
        content = content.strip()
        fenced = _CODE_FENCE.match(content)
        if fenced:
            content = fenced.group(1).strip()
        if not content.startswith('['):
            return content
        try:
            parts = json.loads(content)
        except json.JSONDecodeError:
            return content
        if not isinstance(parts, list):
            return content
        if not batched and len(parts) == 1:
            return str(parts[0])
        return self.separator.join(str(p) for p in parts)
