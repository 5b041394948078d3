# model_config.py
import logging
import time
from datetime import datetime

import httpx

from config import (
    CONFIG_REQUEST_TIMEOUT,
    DEFAULT_GENERATION_CONFIG,
    DEFAULT_PIPELINE_CONFIG,
    FIRESTORE_BASE_URL,
    FIRESTORE_PROJECT_ID,
    MODEL_CONFIG_COLLECTION,
    PIPELINE_CONFIG_DOCUMENT,
)
from errors import UpstreamError, UpstreamTimeout
from model_router import is_known_model, resolve
from models import ModelConfig, PipelineConfig

log = logging.getLogger(__name__)

IMAGE_MODEL_MARKERS = ("image", "imagen", "nanobanana", "nano-banana")


def _default_output_type(model_id: str) -> str:
    if is_known_model(model_id):
        return resolve(model_id).default_modality.value
    # Ids outside the table are guessed from their name
    if any(marker in model_id.lower() for marker in IMAGE_MODEL_MARKERS):
        return "IMAGE"
    return "TEXT"


def default_model_config(model_id: str) -> ModelConfig:
    return ModelConfig(
        model_id=model_id,
        display_name=model_id,
        temperature=DEFAULT_GENERATION_CONFIG["temperature"],
        top_p=DEFAULT_GENERATION_CONFIG["top_p"],
        max_output_tokens=DEFAULT_GENERATION_CONFIG["max_output_tokens"],
        output_type=_default_output_type(model_id),
        aspect_ratio=DEFAULT_GENERATION_CONFIG["aspect_ratio"],
        sample_count=DEFAULT_GENERATION_CONFIG["sample_count"],
        enabled=True,
        updated_at=int(time.time() * 1000),
    )


def parse_firestore_value(field):
    """Decodes one Firestore REST typed value ({"stringValue": ...} etc.)."""
    if not isinstance(field, dict):
        return None
    if "stringValue" in field:
        return field["stringValue"]
    if "integerValue" in field:
        return int(field["integerValue"])
    if "doubleValue" in field:
        return float(field["doubleValue"])
    if "booleanValue" in field:
        return bool(field["booleanValue"])
    if "timestampValue" in field:
        try:
            parsed = datetime.fromisoformat(field["timestampValue"].replace("Z", "+00:00"))
        except ValueError:
            return None
        return int(parsed.timestamp() * 1000)
    if "mapValue" in field:
        return {
            key: parse_firestore_value(value)
            for key, value in (field["mapValue"].get("fields") or {}).items()
        }
    if "arrayValue" in field:
        return [
            parse_firestore_value(value)
            for value in (field["arrayValue"].get("values") or [])
        ]
    return None


def to_firestore_value(value):
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, dict):
        return {
            "mapValue": {
                "fields": {k: to_firestore_value(v) for k, v in value.items()}
            }
        }
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [to_firestore_value(v) for v in value]}}
    return {"stringValue": str(value)}


def _or_default(value, default):
    return default if value is None or value == "" else value


def model_config_from_document(model_id: str, document: dict) -> ModelConfig:
    fields = {k: parse_firestore_value(v) for k, v in (document.get("fields") or {}).items()}
    defaults = default_model_config(model_id)
    return ModelConfig(
        model_id=model_id,
        display_name=_or_default(fields.get("displayName"), model_id),
        description=_or_default(fields.get("description"), ""),
        system_prompt=_or_default(fields.get("systemPrompt"), ""),
        temperature=_or_default(fields.get("temperature"), defaults.temperature),
        top_p=_or_default(fields.get("topP"), defaults.top_p),
        max_output_tokens=_or_default(
            fields.get("maxOutputTokens"), defaults.max_output_tokens
        ),
        output_type=_or_default(fields.get("outputType"), defaults.output_type),
        aspect_ratio=_or_default(fields.get("aspectRatio"), defaults.aspect_ratio),
        sample_count=_or_default(fields.get("sampleCount"), defaults.sample_count),
        safety_settings=fields.get("safetySettings") or {},
        enabled=fields.get("enabled") is not False,
        updated_at=_or_default(fields.get("updatedAt"), defaults.updated_at),
    )


def model_config_to_document(config: ModelConfig) -> dict:
    fields = {
        "modelId": config.model_id,
        "displayName": config.display_name or config.model_id,
        "description": config.description or "",
        "systemPrompt": config.system_prompt or "",
        "temperature": float(_or_default(config.temperature, 0.7)),
        "topP": float(_or_default(config.top_p, 0.95)),
        "maxOutputTokens": int(_or_default(config.max_output_tokens, 8192)),
        "outputType": config.output_type or "TEXT",
        "aspectRatio": config.aspect_ratio or "1:1",
        "sampleCount": int(_or_default(config.sample_count, 1)),
        "enabled": config.enabled is not False,
        "updatedAt": int(time.time() * 1000),
    }
    if config.safety_settings:
        fields["safetySettings"] = config.safety_settings
    return {"fields": {k: to_firestore_value(v) for k, v in fields.items()}}


def pipeline_config_from_document(document: dict) -> PipelineConfig:
    fields = {k: parse_firestore_value(v) for k, v in (document.get("fields") or {}).items()}
    return PipelineConfig(
        enabled=fields.get("enabled") is True,
        pre_model=fields.get("preModel") or None,
        instructions=fields.get("instructions") or "",
        extra_prompt=fields.get("extraPrompt") or "",
        temperature=_or_default(fields.get("temperature"), DEFAULT_PIPELINE_CONFIG["temperature"]),
        top_p=_or_default(fields.get("topP"), DEFAULT_PIPELINE_CONFIG["top_p"]),
    )


class FirestoreConfigStore:
    """
    Model configuration backed by the Firestore REST API v1
    (`modelConfigs/{modelId}` and `configs/modelPipeline`).
    A missing document means "use defaults"; any other failure propagates.
    """

    def __init__(
        self,
        token_cache,
        project_id: str = FIRESTORE_PROJECT_ID,
        timeout: float = CONFIG_REQUEST_TIMEOUT,
        http_client: httpx.AsyncClient = None,
    ):
        self.token_cache = token_cache
        self.project_id = project_id
        self.timeout = timeout
        self._http_client = http_client

    def document_url(self, path: str) -> str:
        return (
            f"{FIRESTORE_BASE_URL}/projects/{self.project_id}"
            f"/databases/(default)/documents/{path}"
        )

    async def _request(self, method, url, payload=None):
        access_token = await self.token_cache.get_token()
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        try:
            if self._http_client is not None:
                return await self._http_client.request(
                    method, url, headers=headers, json=payload, timeout=self.timeout
                )
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, headers=headers, json=payload)
        except httpx.TimeoutException:
            raise UpstreamTimeout("Firestore", self.timeout)
        except httpx.RequestError as e:
            log.error(f"Firestore connection error: {e}")
            raise UpstreamError("Firestore", 503, f"Connection error: {e}")

    async def _get_document(self, path: str):
        response = await self._request("GET", self.document_url(path))
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            log.error(f"Firestore error {response.status_code}: {response.text}")
            raise UpstreamError("Firestore", response.status_code, response.text)
        return response.json()

    async def load_config(self, model_id: str) -> ModelConfig:
        log.info(f"Loading config for {model_id} from Firestore...")
        document = await self._get_document(f"{MODEL_CONFIG_COLLECTION}/{model_id}")
        if document is None:
            log.info(f"Config not found for {model_id}, using defaults")
            return default_model_config(model_id)
        return model_config_from_document(model_id, document)

    async def save_config(self, config: ModelConfig) -> None:
        url = self.document_url(f"{MODEL_CONFIG_COLLECTION}/{config.model_id}")
        response = await self._request("PATCH", url, model_config_to_document(config))
        if response.status_code >= 400:
            raise UpstreamError("Firestore", response.status_code, response.text)
        log.info(f"Saved config for {config.model_id}")

    async def load_pipeline_config(self) -> PipelineConfig:
        try:
            document = await self._get_document(PIPELINE_CONFIG_DOCUMENT)
        except (UpstreamError, UpstreamTimeout) as e:
            # The pipeline is an optional rewrite step; run without it.
            log.warning(f"Could not load pipeline config, pipeline disabled: {e}")
            return PipelineConfig(**DEFAULT_PIPELINE_CONFIG)
        if document is None:
            return PipelineConfig(**DEFAULT_PIPELINE_CONFIG)
        return pipeline_config_from_document(document)


class InMemoryConfigStore:
    """Config store for local development and tests."""

    def __init__(self, configs: dict = None, pipeline: PipelineConfig = None):
        self.configs = dict(configs or {})
        self.pipeline = pipeline or PipelineConfig(**DEFAULT_PIPELINE_CONFIG)

    async def load_config(self, model_id: str) -> ModelConfig:
        config = self.configs.get(model_id)
        return config if config is not None else default_model_config(model_id)

    async def save_config(self, config: ModelConfig) -> None:
        self.configs[config.model_id] = config

    async def load_pipeline_config(self) -> PipelineConfig:
        return self.pipeline
