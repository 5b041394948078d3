# response_mapper.py
import logging
import re

from errors import MissingPayloadError
from models import GenerationResult, ModelDescriptor, OutputModality, Provider

log = logging.getLogger(__name__)

BASE64_PATTERN = re.compile(r"[A-Za-z0-9+/=]+")
# Shorter strings are too likely to be ids, hashes or finish reasons
FALLBACK_SCAN_MIN_LENGTH = 500


def safe_get(obj, *path):
    """
    Walks `path` (dict keys and list indices) through `obj`.
    Returns None at the first missing key, out-of-range index or wrong type.
    """
    current = obj
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or not -len(current) <= key < len(current):
                return None
        elif not isinstance(current, dict):
            return None
        else:
            if key not in current:
                return None
        current = current[key]
    return current


def _first_part(*path):
    return lambda response: safe_get(
        response, "candidates", 0, "content", "parts", 0, *path
    )


def _any_part_inline_data(response):
    parts = safe_get(response, "candidates", 0, "content", "parts")
    if not isinstance(parts, list):
        return None
    for part in parts:
        data = safe_get(part, "inlineData", "data") or safe_get(
            part, "inline_data", "data"
        )
        if data:
            return data
    return None


def deep_scan(obj):
    """
    Depth-first search, in key order, for the first string that looks like a
    base64 payload (base64 alphabet only, longer than FALLBACK_SCAN_MIN_LENGTH).
    """
    if isinstance(obj, dict):
        children = obj.values()
    elif isinstance(obj, list):
        children = obj
    else:
        return None

    for value in children:
        if (
            isinstance(value, str)
            and len(value) > FALLBACK_SCAN_MIN_LENGTH
            and BASE64_PATTERN.fullmatch(value)
        ):
            return value
        found = deep_scan(value)
        if found:
            return found
    return None


# Ordered: the first accessor returning a non-empty string wins.
# New vendor layouts are added here, not in the extraction flow.
IMAGE_ACCESSORS = [
    ("candidates[0].content.parts[0].inlineData.data", _first_part("inlineData", "data")),
    ("candidates[0].content.parts[0].inline_data.data", _first_part("inline_data", "data")),
    ("candidates[0].content.parts[0].media.data", _first_part("media", "data")),
    ("candidates[0].content.parts[0].image.base64", _first_part("image", "base64")),
    ("candidates[0].content.parts[*].inlineData.data", _any_part_inline_data),
    ("deep scan (base64 string > 500 chars)", deep_scan),
]

IMAGEN_ACCESSORS = [
    ("predictions[0].imageBase64", lambda r: safe_get(r, "predictions", 0, "imageBase64")),
    (
        "predictions[0].bytesBase64Encoded",
        lambda r: safe_get(r, "predictions", 0, "bytesBase64Encoded"),
    ),
]


def first_match(response, accessors):
    """Returns (path_name, value) for the first accessor with a non-empty string, else (None, None)."""
    for name, accessor in accessors:
        value = accessor(response)
        if isinstance(value, str) and value:
            return name, value
    return None, None


def extract_text(response):
    parts = safe_get(response, "candidates", 0, "content", "parts")
    if not isinstance(parts, list):
        return None
    for part in parts:
        text = safe_get(part, "text")
        if isinstance(text, str) and text:
            return text
    return None


def extract_image(response, accessors=IMAGE_ACCESSORS):
    path, value = first_match(response, accessors)
    if path is not None:
        log.debug(f"Image located via {path} ({len(value)} chars)")
    return value


def extract(response, expected_modality: OutputModality) -> GenerationResult:
    """
    Extracts the canonical result from a generateContent-style response.
    Absent text is not an error (vendors omit it in multimodal replies).
    Absent image raises MissingPayloadError when the modality includes IMAGE.
    """
    result = GenerationResult()
    if expected_modality.wants_text:
        result.text = extract_text(response)
    if expected_modality.wants_image:
        result.image_base64 = extract_image(response)
        if result.image_base64 is None:
            raise MissingPayloadError(
                "image data", [name for name, _ in IMAGE_ACCESSORS], response
            )
    return result


def extract_imagen(response) -> GenerationResult:
    _, image = first_match(response, IMAGEN_ACCESSORS)
    if image is None:
        raise MissingPayloadError(
            "image data in Imagen response",
            [name for name, _ in IMAGEN_ACCESSORS],
            response,
        )
    return GenerationResult(image_base64=image)


def normalize_response(
    descriptor: ModelDescriptor, provider_response: dict, expected_modality: OutputModality
) -> GenerationResult:
    """Dispatches to the extractor for the descriptor's provider."""
    provider = descriptor.provider
    if provider is Provider.IMAGEN:
        return extract_imagen(provider_response)
    elif provider in (Provider.GEMINI, Provider.VERTEX_GEMINI, Provider.LEGACY_GEMINI):
        return extract(provider_response, expected_modality)
    raise ValueError(f"Unknown provider: {provider}")
