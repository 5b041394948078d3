# app.py
import logging
import os
import traceback

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from config import (
    CHAT_ROUTE,
    DEBUG_MODE,
    DEFAULT_TEXT_MODEL,
    GENERATE_ROUTE,
    IMAGEN_ROUTE,
    LOG_LEVEL,
    NANOBANANA_ROUTE,
    UPLOAD_ROUTE,
)
from credential_provider import AccessTokenCache, ServiceAccountCredentialProvider
from errors import GatewayError
from generation_service import GenerationService
from llm_clients.imgbb_client import ImgBBClient
from llm_clients.vertexai_client import VertexAIClient
from model_config import FirestoreConfigStore
from models import OutputModality

logging.basicConfig(
    level=LOG_LEVEL, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s"
)

app = Flask(__name__)

# One token cache per process, shared by the vendor client and the config store
token_cache = AccessTokenCache(ServiceAccountCredentialProvider())
app.config["GENERATION_SERVICE"] = GenerationService(
    VertexAIClient(token_cache), FirestoreConfigStore(token_cache)
)
app.config["IMAGE_UPLOADER"] = ImgBBClient()

# Canonical request fields accepted by /v1/generate
CANONICAL_SETTING_FIELDS = (
    "systemInstruction",
    "temperature",
    "topP",
    "maxOutputTokens",
    "outputModality",
    "aspectRatio",
    "sampleCount",
)


def _service() -> GenerationService:
    return app.config["GENERATION_SERVICE"]


def _debug_requested(request_json: dict) -> bool:
    return DEBUG_MODE or request_json.get("debugMode") is True


def _debug_block(outcome, model_settings):
    return {
        "request": {
            "model": outcome.descriptor.model_id,
            "prompt": outcome.prompt,
            "modelSettings": model_settings,
            "payload": outcome.request_body,
        },
        "response": outcome.raw_response,
    }


def _require_string(request_json: dict, field_name: str):
    value = request_json.get(field_name)
    if not value or not isinstance(value, str):
        return None, (jsonify({"error": f'Missing or invalid "{field_name}" field'}), 400)
    return value, None


def _get_json():
    request_json = request.get_json(silent=True)
    if not isinstance(request_json, dict):
        return None, (jsonify({"error": "Request body is empty or not in JSON format."}), 400)
    return request_json, None


@app.errorhandler(GatewayError)
def handle_gateway_error(e):
    if e.status_code >= 500:
        app.logger.error(f"{type(e).__name__}: {e.message}")
    else:
        app.logger.warning(f"{type(e).__name__}: {e.message}")
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(ValueError)
def handle_value_error(e):
    return jsonify({"error": str(e)}), 400


# Global error handler for uncaught exceptions
@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code
    traceback.print_exc()
    response = jsonify(
        {"error": "An unexpected internal server error occurred.", "details": str(e)}
    )
    response.status_code = 500
    return response


@app.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@app.route(CHAT_ROUTE, methods=["POST"])
async def handle_chat():
    """Text models only. Body: {"message": "...", "model": "gemini-2.5-flash", "modelSettings": {...}}"""
    request_json, error = _get_json()
    if error:
        return error
    message, error = _require_string(request_json, "message")
    if error:
        return error

    model = request_json.get("model") or DEFAULT_TEXT_MODEL
    model_settings = request_json.get("modelSettings") or {}
    app.logger.info(f"Chat request: model={model}, message_length={len(message)}")

    outcome = await _service().generate_chat(
        model, message, model_settings, route=CHAT_ROUTE
    )
    text = outcome.result.text
    response_data = {
        "reply": text or "No response generated",
        "text": text,
        "model": outcome.descriptor.model_id,
    }
    if outcome.fallback_from:
        response_data["fallbackFrom"] = outcome.fallback_from
    if _debug_requested(request_json):
        response_data["debug"] = _debug_block(outcome, model_settings)
    return jsonify(response_data), 200


@app.route(IMAGEN_ROUTE, methods=["POST"])
async def handle_generate_image():
    """Imagen models. Body: {"prompt": "...", "model": "imagen-4", "modelSettings": {...}}"""
    request_json, error = _get_json()
    if error:
        return error
    prompt, error = _require_string(request_json, "prompt")
    if error:
        return error

    model = request_json.get("model") or "imagen-4"
    model_settings = request_json.get("modelSettings") or {}
    app.logger.info(f"Imagen request: model={model}")

    outcome = await _service().generate(model, prompt, model_settings, route=IMAGEN_ROUTE)
    image = outcome.result.image_base64
    response_data = {"image": image, "imageBase64": image}
    if _debug_requested(request_json):
        response_data["debug"] = _debug_block(outcome, model_settings)
    return jsonify(response_data), 200


@app.route(NANOBANANA_ROUTE, methods=["POST"])
async def handle_generate_nanobanana_image():
    """
    Vertex Gemini image models ("Nanobanana").
    The response shape follows the resolved output modality:
      IMAGE          -> {"image", "imageBase64"}
      TEXT           -> {"text", "reply"}
      TEXT_AND_IMAGE -> {"text", "image", "imageBase64"}
    """
    request_json, error = _get_json()
    if error:
        return error
    prompt, error = _require_string(request_json, "prompt")
    if error:
        return error

    model = request_json.get("model") or "gemini-2.5-flash-image"
    model_settings = request_json.get("modelSettings") or {}
    app.logger.info(f"Nanobanana request: model={model}")

    outcome = await _service().generate(
        model, prompt, model_settings, route=NANOBANANA_ROUTE
    )
    result = outcome.result
    if outcome.modality is OutputModality.TEXT:
        response_data = {"text": result.text, "reply": result.text}
    elif outcome.modality is OutputModality.TEXT_AND_IMAGE:
        response_data = {
            "text": result.text,
            "image": result.image_base64,
            "imageBase64": result.image_base64,
        }
    else:
        response_data = {"image": result.image_base64, "imageBase64": result.image_base64}
    if _debug_requested(request_json):
        response_data["debug"] = _debug_block(outcome, model_settings)
    return jsonify(response_data), 200


@app.route(GENERATE_ROUTE, methods=["POST"])
async def handle_generate():
    """
    Canonical route for any model:
    {"modelId", "text", "systemInstruction"?, "temperature"?, "topP"?,
     "maxOutputTokens"?, "outputModality"?: "TEXT"|"IMAGE"|"TEXT_AND_IMAGE"}
    """
    request_json, error = _get_json()
    if error:
        return error
    model_id, error = _require_string(request_json, "modelId")
    if error:
        return error
    text, error = _require_string(request_json, "text")
    if error:
        return error

    model_settings = {
        key: request_json[key]
        for key in CANONICAL_SETTING_FIELDS
        if request_json.get(key) is not None
    }
    outcome = await _service().generate(model_id, text, model_settings)
    response_data = outcome.result.to_dict()
    if _debug_requested(request_json):
        response_data["debug"] = _debug_block(outcome, model_settings)
    return jsonify(response_data), 200


@app.route(UPLOAD_ROUTE, methods=["POST"])
async def handle_upload_image():
    """Body: {"base64": "<image data or data URL>"} -> {"url": "..."}"""
    request_json, error = _get_json()
    if error:
        return error
    base64_image, error = _require_string(request_json, "base64")
    if error:
        return error

    url = await app.config["IMAGE_UPLOADER"].upload(base64_image)
    return jsonify({"url": url}), 200


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 12457))
    print(
        f"Starting gateway on port {port}. For async, run with an ASGI server like Hypercorn or Uvicorn."
    )
    print(f"Example: hypercorn app:app -b 0.0.0.0:{port}")
    app.run(host="0.0.0.0", port=port)
