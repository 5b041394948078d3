# model_router.py
import logging

from config import (
    CHAT_ROUTE,
    DEFAULT_TEXT_MODEL,
    GEMINI_GENERATE_CONTENT_URL,
    GEMINI_GENERATE_IMAGE_URL,
    IMAGEN_ROUTE,
    MODEL_TABLE,
    NANOBANANA_ROUTE,
    VERTEX_GENERATE_CONTENT_URL,
    VERTEX_PREDICT_URL,
)
from models import CapabilityClass, ModelDescriptor, OutputModality, Provider

log = logging.getLogger(__name__)

# Endpoint template and serving route per provider
PROVIDER_ENDPOINTS = {
    Provider.GEMINI: (GEMINI_GENERATE_CONTENT_URL, CHAT_ROUTE),
    Provider.VERTEX_GEMINI: (VERTEX_GENERATE_CONTENT_URL, NANOBANANA_ROUTE),
    Provider.IMAGEN: (VERTEX_PREDICT_URL, IMAGEN_ROUTE),
    Provider.LEGACY_GEMINI: (GEMINI_GENERATE_IMAGE_URL, IMAGEN_ROUTE),
}


def _build_descriptor(model_id: str, capability: str, entry: dict) -> ModelDescriptor:
    provider = Provider(entry["provider"])
    endpoint_template, route = PROVIDER_ENDPOINTS[provider]
    return ModelDescriptor(
        model_id=model_id,
        capability_class=CapabilityClass(capability),
        provider=provider,
        endpoint_template=endpoint_template,
        vendor_model=entry.get("vendor_model", model_id),
        route=route,
        default_modality=OutputModality.parse(
            entry.get("default_modality"), OutputModality.TEXT
        ),
    )


def _build_table(model_table: dict) -> dict:
    descriptors = {}
    for capability, entries in model_table.items():
        for model_id, entry in entries.items():
            if model_id in descriptors:
                raise ValueError(f"Model '{model_id}' is listed in more than one class")
            descriptors[model_id] = _build_descriptor(model_id, capability, entry)
    return descriptors


DESCRIPTORS = _build_table(MODEL_TABLE)


def resolve(model_id: str) -> ModelDescriptor:
    """
    Maps a model identifier to its descriptor.
    Identifiers are matched case-insensitively after trimming. Unknown
    identifiers do NOT raise: they resolve to the default text model.
    """
    if not model_id or not isinstance(model_id, str):
        raise ValueError("Model name is required")

    normalized = model_id.strip().lower()
    descriptor = DESCRIPTORS.get(normalized)
    if descriptor is None:
        log.warning(
            f"Unknown model '{model_id}', defaulting to {DEFAULT_TEXT_MODEL}"
        )
        return DESCRIPTORS[DEFAULT_TEXT_MODEL]
    return descriptor


def is_known_model(model_id: str) -> bool:
    return bool(model_id) and model_id.strip().lower() in DESCRIPTORS


def is_text_model(model_id: str) -> bool:
    return resolve(model_id).capability_class is CapabilityClass.TEXT


def is_image_model(model_id: str) -> bool:
    return resolve(model_id).capability_class is CapabilityClass.IMAGE


def list_models(capability: CapabilityClass = None):
    return [
        d.model_id
        for d in DESCRIPTORS.values()
        if capability is None or d.capability_class is capability
    ]
