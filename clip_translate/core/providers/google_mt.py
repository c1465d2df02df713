"""
Cheap bulk machine-translation provider (Google "gtx" endpoint).
"""

from typing import Any, Optional

import httpx

from clip_translate.config import MT_API_ENDPOINT, MT_TIMEOUT
from clip_translate.core.exceptions import ProviderResponseError
from clip_translate.core.scripts import direction_for, normalize_language
from .base import TranslationProvider


class GoogleMTProvider(TranslationProvider):
    """Free Google Translate endpoint used for high-volume, low-cost calls"""

    name = "google_mt"

    def __init__(self, api_endpoint: str = MT_API_ENDPOINT, timeout: float = MT_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(timeout, transport)
        self.api_endpoint = api_endpoint

    async def _request(self, text: str, target_lang: str, source_lang: Optional[str]) -> str:
        target = normalize_language(target_lang)
        source = source_lang or direction_for(target).source_language
        params = {
            "client": "gtx",
            "sl": source,
            "tl": target,
            "dt": "t",
            "q": text,
        }
        client = await self._get_client()
        response = await client.get(self.api_endpoint, params=params)
        self._raise_for_status(response)
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"Invalid JSON from {self.name}: {e}", self.name)
        return self.parse_response(data)

    @classmethod
    def parse_response(cls, data: Any) -> str:
        """Concatenate the segment strings found in ``data[0]``."""
        if not isinstance(data, list) or not data or not isinstance(data[0], list):
            raise ProviderResponseError("Unexpected response shape", cls.name)
        return "".join(
            segment[0] for segment in data[0]
            if isinstance(segment, list) and segment and isinstance(segment[0], str)
        )
