import pytest

from config import CHAT_ROUTE, IMAGEN_ROUTE, NANOBANANA_ROUTE
from conftest import LONG_B64, FakeVendorClient, image_response, text_response
from errors import (
    MissingPayloadError,
    ModelDisabled,
    ModelUnavailable,
    UnsupportedModel,
    UpstreamError,
)
from generation_service import GenerationService
from model_config import InMemoryConfigStore
from models import ModelConfig, OutputModality, PipelineConfig


@pytest.mark.asyncio
async def test_disabled_model_is_rejected_before_any_vendor_call():
    vendor = FakeVendorClient()
    store = InMemoryConfigStore(
        {"gemini-2.5-flash": ModelConfig(model_id="gemini-2.5-flash", enabled=False)}
    )
    service = GenerationService(vendor, store)

    with pytest.raises(ModelDisabled) as excinfo:
        await service.generate("gemini-2.5-flash", "hello")

    assert excinfo.value.status_code == 403
    assert "gemini-2.5-flash" in str(excinfo.value)
    assert vendor.calls == []


@pytest.mark.asyncio
async def test_text_generation_end_to_end(config_store):
    vendor = FakeVendorClient(text_response("Hello there"))
    service = GenerationService(vendor, config_store)

    outcome = await service.generate("Gemini-2.5-Pro", "hi", {"temperature": 0.1})

    assert outcome.result.to_dict() == {"text": "Hello there"}
    assert outcome.descriptor.model_id == "gemini-2.5-pro"
    descriptor, body = vendor.calls[0]
    assert descriptor.model_id == "gemini-2.5-pro"
    assert body["generationConfig"]["temperature"] == 0.1
    assert config_store.loads == ["gemini-2.5-pro"]


@pytest.mark.asyncio
async def test_imagen_generation_returns_image_only(config_store):
    vendor = FakeVendorClient({"predictions": [{"bytesBase64Encoded": LONG_B64}]})
    service = GenerationService(vendor, config_store)

    outcome = await service.generate("imagen-4", "a red bicycle", route=IMAGEN_ROUTE)

    assert outcome.result.to_dict() == {"imageBase64": LONG_B64}
    assert outcome.modality is OutputModality.IMAGE
    assert vendor.calls[0][1] == {
        "instances": [{"prompt": "a red bicycle"}],
        "parameters": {"sampleCount": 1, "aspectRatio": "1:1"},
    }


@pytest.mark.asyncio
async def test_unknown_model_defaults_to_text_model(config_store):
    vendor = FakeVendorClient(text_response("ok"))
    outcome = await GenerationService(vendor, config_store).generate("gpt-4o", "hi")
    assert outcome.descriptor.model_id == "gemini-2.5-flash"


@pytest.mark.asyncio
async def test_route_mismatch_names_the_correct_endpoint(config_store):
    vendor = FakeVendorClient()
    service = GenerationService(vendor, config_store)

    with pytest.raises(UnsupportedModel) as excinfo:
        await service.generate("imagen-4", "a cat", route=NANOBANANA_ROUTE)

    assert excinfo.value.correct_route == IMAGEN_ROUTE
    assert excinfo.value.to_dict()["endpoint"] == IMAGEN_ROUTE
    assert vendor.calls == []


@pytest.mark.asyncio
async def test_image_model_without_image_raises_missing_payload(config_store):
    vendor = FakeVendorClient(text_response("I can't draw that"))
    service = GenerationService(vendor, config_store)

    with pytest.raises(MissingPayloadError):
        await service.generate("gemini-2.5-flash-image", "a cat", route=NANOBANANA_ROUTE)


@pytest.mark.asyncio
async def test_chat_falls_back_once_when_model_unavailable(config_store):
    vendor = FakeVendorClient(
        ModelUnavailable("Gemini", 404, "models/gemini-1.5-pro is not found"),
        text_response("from fallback"),
    )
    service = GenerationService(vendor, config_store)

    outcome = await service.generate_chat("gemini-1.5-pro", "hi", route=CHAT_ROUTE)

    assert outcome.result.text == "from fallback"
    assert outcome.fallback_from == "gemini-1.5-pro"
    assert [d.model_id for d, _ in vendor.calls] == ["gemini-1.5-pro", "gemini-2.5-flash"]


@pytest.mark.asyncio
async def test_chat_does_not_fall_back_on_server_error(config_store):
    vendor = FakeVendorClient(UpstreamError("Gemini", 500, "internal"))
    service = GenerationService(vendor, config_store)

    with pytest.raises(UpstreamError) as excinfo:
        await service.generate_chat("gemini-2.5-pro", "hi")
    assert excinfo.value.status == 500
    assert len(vendor.calls) == 1


@pytest.mark.asyncio
async def test_fallback_model_failure_is_not_retried(config_store):
    vendor = FakeVendorClient(ModelUnavailable("Gemini", 404, "not found"))
    service = GenerationService(vendor, config_store)

    with pytest.raises(UpstreamError):
        await service.generate_chat("gemini-2.5-flash", "hi")
    assert len(vendor.calls) == 1


@pytest.mark.asyncio
async def test_fallback_failure_propagates_without_second_retry(config_store):
    vendor = FakeVendorClient(
        ModelUnavailable("Gemini", 400, "bad model"),
        ModelUnavailable("Gemini", 404, "also missing"),
    )
    service = GenerationService(vendor, config_store)

    with pytest.raises(UpstreamError) as excinfo:
        await service.generate_chat("gemini-2.5-pro", "hi")
    assert excinfo.value.body == "also missing"
    assert len(vendor.calls) == 2


@pytest.mark.asyncio
async def test_pipeline_rewrites_prompt_before_image_model():
    store = InMemoryConfigStore(
        pipeline=PipelineConfig(
            enabled=True,
            pre_model="gemini-2.5-flash",
            instructions="Rewrite as a detailed image prompt.",
            extra_prompt="high detail",
        )
    )
    vendor = FakeVendorClient(
        text_response("A watercolor fox in a snowy forest"), image_response()
    )
    service = GenerationService(vendor, store)

    outcome = await service.generate("gemini-2.5-flash-image", "fox", route=NANOBANANA_ROUTE)

    (pre_descriptor, pre_body), (image_descriptor, image_body) = vendor.calls
    assert pre_descriptor.model_id == "gemini-2.5-flash"
    assert pre_body["contents"][0]["parts"][0]["text"] == "fox"
    assert pre_body["systemInstruction"]["parts"][0]["text"] == (
        "Rewrite as a detailed image prompt."
    )
    assert pre_body["generationConfig"]["temperature"] == 0.4
    assert image_descriptor.model_id == "gemini-2.5-flash-image"
    assert image_body["contents"][0]["parts"][0]["text"] == (
        "A watercolor fox in a snowy forest\n\nhigh detail"
    )
    assert outcome.prompt == "A watercolor fox in a snowy forest\n\nhigh detail"
    assert outcome.result.image_base64 == LONG_B64


@pytest.mark.asyncio
async def test_pipeline_is_not_used_for_text_models():
    store = InMemoryConfigStore(
        pipeline=PipelineConfig(enabled=True, pre_model="gemini-2.5-pro")
    )
    vendor = FakeVendorClient(text_response("hi"))
    await GenerationService(vendor, store).generate("gemini-2.5-flash", "hello")
    assert len(vendor.calls) == 1


@pytest.mark.asyncio
async def test_pipeline_skips_image_pre_model():
    store = InMemoryConfigStore(
        pipeline=PipelineConfig(enabled=True, pre_model="imagen-4")
    )
    vendor = FakeVendorClient(image_response())
    outcome = await GenerationService(vendor, store).generate(
        "gemini-2.5-flash-image", "fox"
    )
    assert outcome.prompt == "fox"
    assert len(vendor.calls) == 1


class FailingConfigStore(InMemoryConfigStore):
    def __init__(self, error):
        super().__init__()
        self.error = error

    async def load_config(self, model_id):
        raise self.error


@pytest.mark.asyncio
async def test_config_store_failure_does_not_trigger_chat_fallback():
    vendor = FakeVendorClient(text_response("should not be served"))
    store = FailingConfigStore(UpstreamError("Firestore", 400, "bad request"))
    service = GenerationService(vendor, store)

    with pytest.raises(UpstreamError) as excinfo:
        await service.generate_chat("gemini-2.5-pro", "hi", route=CHAT_ROUTE)

    assert excinfo.value.vendor == "Firestore"
    assert not isinstance(excinfo.value, ModelUnavailable)
    assert vendor.calls == []


@pytest.mark.asyncio
async def test_token_endpoint_rejection_does_not_trigger_chat_fallback(config_store):
    vendor = FakeVendorClient(
        UpstreamError("OAuth2 token endpoint", 400, '{"error": "invalid_grant"}'),
        text_response("should not be served"),
    )
    service = GenerationService(vendor, config_store)

    with pytest.raises(UpstreamError) as excinfo:
        await service.generate_chat("gemini-2.5-pro", "hi", route=CHAT_ROUTE)

    assert "invalid_grant" in str(excinfo.value)
    assert len(vendor.calls) == 1


@pytest.mark.asyncio
async def test_multimodal_model_without_stored_config_asks_for_text_and_image():
    response = image_response()
    response["candidates"][0]["content"]["parts"].insert(0, {"text": "A cat"})
    vendor = FakeVendorClient(response)
    service = GenerationService(vendor, InMemoryConfigStore())

    outcome = await service.generate("gemini-2.5-flash-image-multimodal", "a cat")

    assert outcome.modality is OutputModality.TEXT_AND_IMAGE
    assert vendor.calls[0][1]["generationConfig"]["responseModalities"] == ["TEXT", "IMAGE"]
    assert outcome.result.to_dict() == {"text": "A cat", "imageBase64": LONG_B64}
