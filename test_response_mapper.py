import pytest

from conftest import LONG_B64
from errors import MissingPayloadError
from model_router import resolve
from models import OutputModality
from response_mapper import (
    IMAGE_ACCESSORS,
    deep_scan,
    extract,
    extract_imagen,
    extract_text,
    normalize_response,
    safe_get,
)


def _parts_response(*parts):
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


def test_safe_get_is_fail_soft():
    data = {"a": [{"b": "c"}]}
    assert safe_get(data, "a", 0, "b") == "c"
    assert safe_get(data, "a", 1, "b") is None
    assert safe_get(data, "a", "b") is None
    assert safe_get(None, "a") is None
    assert safe_get("string", 0) is None


def test_inline_data_beats_fallback_scan():
    response = _parts_response({"inlineData": {"mimeType": "image/png", "data": "Zm9vYmFy"}})
    response["debugBlob"] = "B" * 800
    result = extract(response, OutputModality.IMAGE)
    assert result.image_base64 == "Zm9vYmFy"


@pytest.mark.parametrize(
    "part, expected",
    [
        ({"inline_data": {"data": "c25ha2U="}}, "c25ha2U="),
        ({"media": {"data": "bWVkaWE="}}, "bWVkaWE="),
        ({"image": {"base64": "aW1hZ2U="}}, "aW1hZ2U="),
    ],
)
def test_alternate_image_layouts(part, expected):
    assert extract(_parts_response(part), OutputModality.IMAGE).image_base64 == expected


def test_camel_case_wins_over_snake_case():
    part = {"inlineData": {"data": "Y2FtZWw="}, "inline_data": {"data": "c25ha2U="}}
    assert extract(_parts_response(part), OutputModality.IMAGE).image_base64 == "Y2FtZWw="


def test_fallback_scan_finds_long_base64_string():
    payload = "Q" * 600
    response = {
        "candidates": [{"content": {"parts": [{"blob": {"payload": payload}}]}}],
        "modelVersion": "gemini-2.5-flash-image",
    }
    assert extract(response, OutputModality.IMAGE).image_base64 == payload


def test_fallback_scan_ignores_short_and_non_base64_strings():
    assert deep_scan({"a": "Q" * 500}) is None
    assert deep_scan({"a": "not base64! " * 100}) is None
    assert deep_scan({"a": [{"b": "Q" * 501}]}) == "Q" * 501


def test_fallback_scan_is_depth_first_in_key_order():
    response = {"first": {"nested": "A" * 600}, "second": "B" * 600}
    assert deep_scan(response) == "A" * 600


def test_text_and_image_extracts_both_fields():
    response = _parts_response(
        {"text": "Here is your image"},
        {"inlineData": {"mimeType": "image/png", "data": LONG_B64}},
    )
    result = extract(response, OutputModality.TEXT_AND_IMAGE)
    assert result.text == "Here is your image"
    assert result.image_base64 == LONG_B64


def test_missing_image_raises_with_attempted_paths():
    response = _parts_response({"text": "I cannot draw that."})
    with pytest.raises(MissingPayloadError) as excinfo:
        extract(response, OutputModality.IMAGE)
    error = excinfo.value
    assert error.attempted_paths == [name for name, _ in IMAGE_ACCESSORS]
    assert "I cannot draw that." in error.raw_excerpt
    assert error.status_code == 502


def test_missing_text_is_not_an_error():
    result = extract({"candidates": [{"finishReason": "SAFETY"}]}, OutputModality.TEXT)
    assert result.text is None
    assert result.image_base64 is None


def test_missing_text_in_multimodal_response_is_tolerated():
    response = _parts_response({"inlineData": {"data": LONG_B64}})
    result = extract(response, OutputModality.TEXT_AND_IMAGE)
    assert result.text is None
    assert result.image_base64 == LONG_B64


def test_extract_text_picks_first_part_with_text():
    response = _parts_response({"inlineData": {"data": "x"}}, {"text": ""}, {"text": "hi"})
    assert extract_text(response) == "hi"
    assert extract_text({"candidates": []}) is None
    assert extract_text({"candidates": [{"content": {"parts": "oops"}}]}) is None


def test_raw_excerpt_is_truncated():
    response = _parts_response({"text": "no image here. " * 400})
    with pytest.raises(MissingPayloadError) as excinfo:
        extract(response, OutputModality.IMAGE)
    assert "truncated" in excinfo.value.raw_excerpt
    assert len(excinfo.value.raw_excerpt) < 1100


def test_imagen_prefers_image_base64_then_bytes_base64_encoded():
    assert extract_imagen({"predictions": [{"bytesBase64Encoded": "AAAA"}]}).image_base64 == "AAAA"
    both = {"predictions": [{"imageBase64": "first", "bytesBase64Encoded": "second"}]}
    assert extract_imagen(both).image_base64 == "first"


def test_imagen_missing_image_names_both_paths():
    with pytest.raises(MissingPayloadError) as excinfo:
        extract_imagen({"predictions": [{"raiFilteredReason": "blocked"}]})
    message = str(excinfo.value)
    assert "predictions[0].imageBase64" in message
    assert "predictions[0].bytesBase64Encoded" in message


def test_imagen_has_no_fallback_scan():
    with pytest.raises(MissingPayloadError):
        extract_imagen({"somewhere": {"else": LONG_B64}})


def test_normalize_response_dispatches_by_provider():
    imagen = normalize_response(
        resolve("imagen-4"), {"predictions": [{"bytesBase64Encoded": "AAAA"}]}, OutputModality.IMAGE
    )
    assert imagen.image_base64 == "AAAA"
    assert imagen.text is None

    text = normalize_response(
        resolve("gemini-2.5-flash"), _parts_response({"text": "hello"}), OutputModality.TEXT
    )
    assert text.to_dict() == {"text": "hello"}
