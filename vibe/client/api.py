from typing import Optional

import httpx

from ..schemas import DEFAULT_LANGUAGE, DEFAULT_PERSONALITY
from .errors import error_from_response

DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


class GatewayClient:
    """Async HTTP client for the conversation gateway."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=DEFAULT_TIMEOUT)

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _json(self, response: httpx.Response) -> dict:
        if not response.is_success:
            raise error_from_response(response)
        return response.json()

    async def send_text(
        self,
        message: str,
        personality: str = DEFAULT_PERSONALITY,
        language: str = DEFAULT_LANGUAGE,
    ) -> dict:
        response = await self._client.post(
            "/conversation/text",
            json={"message": message, "personality": personality, "language": language},
        )
        return await self._json(response)

    async def send_voice(
        self,
        audio: bytes,
        filename: str = "recording.webm",
        content_type: str = "audio/webm",
        personality: str = DEFAULT_PERSONALITY,
        language: str = DEFAULT_LANGUAGE,
    ) -> dict:
        response = await self._client.post(
            "/conversation/voice",
            files={"audio": (filename, audio, content_type)},
            data={"personality": personality, "language": language},
        )
        return await self._json(response)

    async def history(self, user_id: Optional[str] = None, limit: int = 20, before: Optional[str] = None) -> dict:
        params = {"limit": limit}
        if user_id:
            params["user_id"] = user_id
        if before:
            params["before"] = before
        response = await self._client.get("/conversation/history", params=params)
        return await self._json(response)

    async def health(self) -> dict:
        return await self._json(await self._client.get("/api/health"))
