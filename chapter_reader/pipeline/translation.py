from __future__ import annotations

import html
import logging
from typing import List, Optional, Protocol, Sequence

import httpx

logger = logging.getLogger(__name__)

GOOGLE_TRANSLATE_URL = "https://translation.googleapis.com/language/translate/v2"


class TranslationClient(Protocol):
    async def translate(self, texts: Sequence[str], target_language: str) -> List[str]:
        """Translate `texts` into `target_language`, returning results in input order."""
        ...


class GoogleTranslateClient:
    """
    Cloud Translation v2 REST client. A single request carries the whole batch;
    the service returns translations in the same order as the `q` values.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = GOOGLE_TRANSLATE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    async def translate(self, texts: Sequence[str], target_language: str) -> List[str]:
        if not texts:
            return []
        body = {"q": list(texts), "target": target_language, "format": "text"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.base_url, params={"key": self.api_key}, json=body)
            response.raise_for_status()
            payload = response.json()

        translations = (payload.get("data") or {}).get("translations") or []
        if len(translations) != len(texts):
            raise RuntimeError(
                f"Translation response size mismatch: sent {len(texts)} text(s), got {len(translations)}"
            )
        results = [html.unescape(t.get("translatedText", "")) for t in translations]
        logger.debug("Translated %d text(s) to %s", len(results), target_language)
        return results
