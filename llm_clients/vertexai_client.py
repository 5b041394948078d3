# llm_clients/vertexai_client.py
import json
import logging

import httpx

from config import REQUEST_TIMEOUT, VERTEX_AI_LOCATION, VERTEX_AI_PROJECT_ID
from errors import ModelUnavailable, UpstreamError, UpstreamTimeout
from models import ModelDescriptor, Provider

log = logging.getLogger(__name__)

VENDOR_NAMES = {
    Provider.GEMINI: "Gemini",
    Provider.VERTEX_GEMINI: "Nanobanana",
    Provider.IMAGEN: "Imagen",
    Provider.LEGACY_GEMINI: "Gemini generateImage",
}

# How generateContent reports an unknown or unavailable model
MODEL_UNAVAILABLE_STATUSES = (400, 404)


class VertexAIClient:
    """
    Sends one generation request to the endpoint named by a ModelDescriptor.
    Authentication comes from the injected AccessTokenCache; no retries are
    performed here.
    """

    def __init__(
        self,
        token_cache,
        project_id: str = VERTEX_AI_PROJECT_ID,
        location: str = VERTEX_AI_LOCATION,
        timeout: float = REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient = None,
    ):
        self.token_cache = token_cache
        self.project_id = project_id
        self.location = location
        self.timeout = timeout
        self._http_client = http_client

    def endpoint_for(self, descriptor: ModelDescriptor) -> str:
        return descriptor.endpoint(project=self.project_id, location=self.location)

    async def _post(self, url, headers, payload):
        if self._http_client is not None:
            return await self._http_client.post(
                url, headers=headers, json=payload, timeout=self.timeout
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, headers=headers, json=payload)

    async def generate(self, descriptor: ModelDescriptor, body: dict) -> dict:
        """
        POSTs `body` to the descriptor's endpoint and returns the decoded JSON.
        Raises UpstreamTimeout on timeout, ModelUnavailable on 400/404, and
        UpstreamError on any other non-2xx, connection failure or a non-JSON body.
        """
        vendor = VENDOR_NAMES[descriptor.provider]
        url = self.endpoint_for(descriptor)
        access_token = await self.token_cache.get_token()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {access_token}",
        }

        log.info(f"Calling {vendor} for model '{descriptor.model_id}': {url}")
        try:
            response = await self._post(url, headers, body)
        except httpx.TimeoutException:
            log.error(f"{vendor} request timed out after {self.timeout}s")
            raise UpstreamTimeout(vendor, self.timeout)
        except httpx.RequestError as e:
            log.error(f"{vendor} connection error: {e}", exc_info=True)
            raise UpstreamError(vendor, 503, f"Connection error: {e}")

        if response.status_code >= 400:
            log.error(
                f"{vendor} API error: status={response.status_code} body={response.text[:500]}"
            )
            if response.status_code in MODEL_UNAVAILABLE_STATUSES:
                raise ModelUnavailable(vendor, response.status_code, response.text)
            raise UpstreamError(vendor, response.status_code, response.text)

        try:
            return response.json()
        except json.JSONDecodeError:
            raise UpstreamError(vendor, response.status_code, response.text)
