# llm_clients/imgbb_client.py
import logging
import re

import httpx

from config import CONFIG_REQUEST_TIMEOUT, IMGBB_API_KEY, IMGBB_UPLOAD_URL
from errors import ConfigurationError, MissingPayloadError, UpstreamError, UpstreamTimeout

log = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:image/[a-z]+;base64,")


def strip_data_url(base64_image: str) -> str:
    return DATA_URL_PREFIX.sub("", base64_image)


class ImgBBClient:
    """Uploads a base64 image to ImgBB and returns its public URL."""

    def __init__(
        self,
        api_key: str = IMGBB_API_KEY,
        timeout: float = CONFIG_REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self._http_client = http_client

    async def _post(self, data):
        if self._http_client is not None:
            return await self._http_client.post(
                IMGBB_UPLOAD_URL, data=data, timeout=self.timeout
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(IMGBB_UPLOAD_URL, data=data)

    async def upload(self, base64_image: str) -> str:
        if not self.api_key:
            raise ConfigurationError("Missing IMGBB_API_KEY")

        log.info("Uploading image to ImgBB...")
        try:
            response = await self._post(
                {"key": self.api_key, "image": strip_data_url(base64_image)}
            )
        except httpx.TimeoutException:
            raise UpstreamTimeout("ImgBB", self.timeout)

        if response.status_code >= 400:
            raise UpstreamError("ImgBB", response.status_code, response.text)

        data = response.json()
        url = (data.get("data") or {}).get("url") if isinstance(data, dict) else None
        if not url:
            raise MissingPayloadError("URL in ImgBB upload response", ["data.url"], data)

        log.info(f"Upload successful, URL: {url}")
        return url
