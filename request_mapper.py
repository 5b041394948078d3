# request_mapper.py
import logging

from config import DEFAULT_GENERATION_CONFIG
from models import (
    CapabilityClass,
    GenerationRequest,
    ModelConfig,
    ModelDescriptor,
    OutputModality,
    Provider,
)

log = logging.getLogger(__name__)

# Accepted spellings for each per-request override. The UI sends snake_case
# (`top_p`, `max_output_tokens`); the canonical API sends camelCase.
SETTING_ALIASES = {
    "system_instruction": ("system", "system_instruction", "systemInstruction"),
    "temperature": ("temperature",),
    "top_p": ("top_p", "topP"),
    "max_output_tokens": ("max_output_tokens", "maxOutputTokens", "max_tokens"),
    "output_type": ("output_type", "outputType", "outputModality", "output_modality"),
    "aspect_ratio": ("aspect_ratio", "aspectRatio"),
    "sample_count": ("sample_count", "sampleCount"),
}

# Attribute on ModelConfig holding the persisted value for each setting
CONFIG_FIELDS = {
    "system_instruction": "system_prompt",
    "temperature": "temperature",
    "top_p": "top_p",
    "max_output_tokens": "max_output_tokens",
    "output_type": "output_type",
    "aspect_ratio": "aspect_ratio",
    "sample_count": "sample_count",
}


def _is_defined(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and value.strip() == "":
        return False
    return True


def _from_settings(model_settings: dict, name: str):
    if not model_settings:
        return None
    for alias in SETTING_ALIASES[name]:
        value = model_settings.get(alias)
        if _is_defined(value):
            return value
    return None


def resolve_setting(
    name: str, model_settings: dict = None, model_config: ModelConfig = None
):
    """
    Field-by-field precedence:
    per-request override (modelSettings) > persisted config (modelConfig) > hard-coded default.
    Returns None when no level defines the field.
    """
    value = _from_settings(model_settings, name)
    if _is_defined(value):
        return value
    if model_config is not None:
        value = getattr(model_config, CONFIG_FIELDS[name], None)
        if _is_defined(value):
            return value
    return DEFAULT_GENERATION_CONFIG.get(name)


def _resolve_modality(
    descriptor: ModelDescriptor, model_settings: dict, model_config: ModelConfig
) -> OutputModality:
    if descriptor.capability_class is CapabilityClass.TEXT:
        requested = _from_settings(model_settings, "output_type")
        if requested and OutputModality.parse(requested) is not OutputModality.TEXT:
            log.warning(
                f"Model '{descriptor.model_id}' is text-only, ignoring output type '{requested}'"
            )
        return OutputModality.TEXT
    if descriptor.provider in (Provider.IMAGEN, Provider.LEGACY_GEMINI):
        return OutputModality.IMAGE

    requested = _from_settings(model_settings, "output_type")
    if requested is None and model_config is not None:
        requested = model_config.output_type
    return OutputModality.parse(requested, descriptor.default_modality)


def map_request_to_canonical(
    descriptor: ModelDescriptor,
    text: str,
    model_settings: dict = None,
    model_config: ModelConfig = None,
) -> GenerationRequest:
    """
    Builds the canonical GenerationRequest for `descriptor`.
    model_settings: per-request overrides from the caller, e.g.
        {"system": "...", "temperature": 0.2, "top_p": 0.9,
         "max_output_tokens": 1024, "output_type": "TEXT+IMAGE",
         "aspect_ratio": "16:9", "sample_count": 1}
    model_config: persisted configuration for the model (may be None).
    """
    if not isinstance(text, str) or not text.strip():
        raise ValueError("Prompt text must be a non-empty string.")

    def setting(name):
        return resolve_setting(name, model_settings, model_config)

    temperature = setting("temperature")
    top_p = setting("top_p")
    max_output_tokens = setting("max_output_tokens")
    sample_count = setting("sample_count")

    return GenerationRequest(
        text=text,
        system_instruction=setting("system_instruction"),
        temperature=float(temperature) if temperature is not None else None,
        top_p=float(top_p) if top_p is not None else None,
        max_output_tokens=int(max_output_tokens) if max_output_tokens is not None else None,
        output_modality=_resolve_modality(descriptor, model_settings, model_config),
        aspect_ratio=setting("aspect_ratio"),
        sample_count=int(sample_count) if sample_count is not None else None,
    )


def _build_generate_content_body(descriptor: ModelDescriptor, request: GenerationRequest):
    body = {"contents": [{"role": "user", "parts": [{"text": request.text}]}]}

    if _is_defined(request.system_instruction):
        body["systemInstruction"] = {
            "role": "system",
            "parts": [{"text": request.system_instruction}],
        }

    generation_config = {}
    if request.temperature is not None:
        generation_config["temperature"] = request.temperature
    if request.top_p is not None:
        generation_config["topP"] = request.top_p
    if request.max_output_tokens is not None:
        generation_config["maxOutputTokens"] = request.max_output_tokens
    if descriptor.is_image_capable:
        generation_config["responseModalities"] = (
            request.output_modality.response_modalities
        )
    if generation_config:
        body["generationConfig"] = generation_config
    return body


def _build_imagen_body(request: GenerationRequest):
    parameters = {}
    if request.sample_count is not None:
        parameters["sampleCount"] = request.sample_count
    if request.aspect_ratio is not None:
        parameters["aspectRatio"] = request.aspect_ratio
    return {"instances": [{"prompt": request.text}], "parameters": parameters}


def _build_legacy_image_body(request: GenerationRequest):
    body = {"prompt": request.text}
    if request.sample_count is not None:
        body["sampleCount"] = request.sample_count
    return body


def build_request_body(descriptor: ModelDescriptor, request: GenerationRequest) -> dict:
    """
    Translates a canonical request into the vendor-specific JSON body.
    The three shapes must not be mixed:
      generateContent (gemini, vertex_gemini): contents / systemInstruction / generationConfig
      Imagen predict:                          instances / parameters
      legacy generateImage:                    prompt / sampleCount
    """
    provider = descriptor.provider
    if provider in (Provider.GEMINI, Provider.VERTEX_GEMINI):
        return _build_generate_content_body(descriptor, request)
    elif provider is Provider.IMAGEN:
        return _build_imagen_body(request)
    elif provider is Provider.LEGACY_GEMINI:
        return _build_legacy_image_body(request)
    raise ValueError(f"Unknown provider: {provider}")


def map_request_to_provider(
    descriptor: ModelDescriptor,
    text: str,
    model_settings: dict = None,
    model_config: ModelConfig = None,
):
    """Canonical mapping followed by body construction. Returns (request, body)."""
    request = map_request_to_canonical(descriptor, text, model_settings, model_config)
    return request, build_request_body(descriptor, request)
