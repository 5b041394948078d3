# generation_service.py
import logging
from dataclasses import dataclass

from config import DEBUG_MODE, FALLBACK_CHAT_MODEL
from errors import ModelDisabled, ModelUnavailable, UnsupportedModel
from model_router import resolve
from models import (
    CapabilityClass,
    GenerationRequest,
    GenerationResult,
    ModelDescriptor,
    OutputModality,
)
from request_mapper import build_request_body, map_request_to_provider
from response_mapper import normalize_response

log = logging.getLogger(__name__)


@dataclass
class GenerationOutcome:
    result: GenerationResult
    descriptor: ModelDescriptor
    modality: OutputModality
    request_body: dict = None
    raw_response: dict = None
    prompt: str = None
    fallback_from: str = None


class GenerationService:
    """
    resolve -> load config -> enabled check -> build body -> vendor call -> extract.
    vendor_client: anything with `async generate(descriptor, body) -> dict`
    config_store:  anything with `async load_config(model_id)` and
                   `async load_pipeline_config()`
    """

    def __init__(self, vendor_client, config_store, debug: bool = DEBUG_MODE):
        self.vendor_client = vendor_client
        self.config_store = config_store
        self.debug = debug

    async def _load_enabled_config(self, descriptor: ModelDescriptor):
        model_config = await self.config_store.load_config(descriptor.model_id)
        if model_config is not None and model_config.enabled is False:
            raise ModelDisabled(descriptor.model_id)
        return model_config

    async def _rewrite_prompt(self, descriptor: ModelDescriptor, prompt: str) -> str:
        """Runs the prompt through the configured pre-model before an image model."""
        if descriptor.capability_class is not CapabilityClass.IMAGE:
            return prompt
        pipeline = await self.config_store.load_pipeline_config()
        if not pipeline.enabled or not pipeline.pre_model:
            return prompt

        pre_descriptor = resolve(pipeline.pre_model)
        if pre_descriptor.capability_class is not CapabilityClass.TEXT:
            log.warning(
                f"Pipeline pre-model '{pipeline.pre_model}' is not a text model, skipping rewrite"
            )
            return prompt
        await self._load_enabled_config(pre_descriptor)

        request = GenerationRequest(
            text=prompt,
            system_instruction=pipeline.instructions or None,
            temperature=pipeline.temperature,
            top_p=pipeline.top_p,
        )
        raw = await self.vendor_client.generate(
            pre_descriptor, build_request_body(pre_descriptor, request)
        )
        rewritten = normalize_response(pre_descriptor, raw, OutputModality.TEXT).text
        if not rewritten:
            log.warning("Pipeline pre-model returned no text, using the original prompt")
            rewritten = prompt
        if pipeline.extra_prompt:
            rewritten = f"{rewritten.strip()}\n\n{pipeline.extra_prompt}"
        log.info(f"Prompt rewritten by pre-model '{pre_descriptor.model_id}'")
        return rewritten.strip()

    async def generate(
        self,
        model_id: str,
        text: str,
        model_settings: dict = None,
        route: str = None,
        use_pipeline: bool = True,
    ) -> GenerationOutcome:
        """
        Runs one generation for `model_id`.
        route: when given, the model must be served by this route; otherwise
               UnsupportedModel is raised naming the correct one.
        """
        descriptor = resolve(model_id)
        if route is not None and descriptor.route != route:
            raise UnsupportedModel(model_id, route, descriptor.route)

        model_config = await self._load_enabled_config(descriptor)

        prompt = text
        if use_pipeline:
            prompt = await self._rewrite_prompt(descriptor, text)

        request, body = map_request_to_provider(
            descriptor, prompt, model_settings, model_config
        )
        if self.debug:
            log.debug(f"Payload for {descriptor.model_id}: {body}")

        raw = await self.vendor_client.generate(descriptor, body)
        if self.debug:
            log.debug(f"Raw response from {descriptor.model_id}: {raw}")

        result = normalize_response(descriptor, raw, request.output_modality)
        log.info(
            f"Generated with {descriptor.model_id}: text={len(result.text or '')} chars, "
            f"image={len(result.image_base64 or '')} chars"
        )
        return GenerationOutcome(
            result=result,
            descriptor=descriptor,
            modality=request.output_modality,
            request_body=body,
            raw_response=raw,
            prompt=prompt,
        )

    async def generate_chat(
        self, model_id: str, message: str, model_settings: dict = None, route: str = None
    ) -> GenerationOutcome:
        """
        Text generation with a one-shot fallback: if the requested model is
        unavailable (ModelUnavailable from the generation client), retry once
        with FALLBACK_CHAT_MODEL. Config-store and credential failures are
        never a reason to fall back, and the fallback itself is never retried.
        """
        try:
            return await self.generate(model_id, message, model_settings, route=route)
        except ModelUnavailable as e:
            requested = resolve(model_id)
            if requested.model_id == FALLBACK_CHAT_MODEL:
                raise
            log.warning(
                f"Model '{requested.model_id}' unavailable ({e.status}), "
                f"falling back to {FALLBACK_CHAT_MODEL}"
            )

        outcome = await self.generate(
            FALLBACK_CHAT_MODEL, message, model_settings, route=route
        )
        outcome.fallback_from = model_id
        return outcome
