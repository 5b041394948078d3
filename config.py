# config.py
import os

# --- Google Cloud Credentials ---
# The gateway authenticates to Google with a single service account.
# Provide the JSON through the environment; never commit it.
GOOGLE_SERVICE_ACCOUNT_JSON = os.environ.get("GOOGLE_SERVICE_ACCOUNT_JSON")
# Alternative to the inline JSON: a path to the key file on disk
GOOGLE_SERVICE_ACCOUNT_FILE = os.environ.get("GOOGLE_SERVICE_ACCOUNT_FILE")

# Scopes requested for the access token. One token serves both the
# Generative Language API and Vertex AI / Firestore.
GOOGLE_AUTH_SCOPES = [
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/generative-language",
]
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
# Refresh the cached token this many seconds before it expires
TOKEN_REFRESH_MARGIN_SECONDS = int(os.environ.get("TOKEN_REFRESH_MARGIN_SECONDS", 60))
TOKEN_LIFETIME_SECONDS = 3600

# Vertex AI (Google Cloud) Configuration
VERTEX_AI_PROJECT_ID = os.environ.get(
    "VERTEX_AI_PROJECT_ID", "your-gcp-project-id-here"
)
VERTEX_AI_LOCATION = os.environ.get("VERTEX_AI_LOCATION", "us-central1")

# Firestore project (defaults to the Vertex project)
FIRESTORE_PROJECT_ID = os.environ.get("FIRESTORE_PROJECT_ID", VERTEX_AI_PROJECT_ID)
FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"
MODEL_CONFIG_COLLECTION = "modelConfigs"
PIPELINE_CONFIG_DOCUMENT = "configs/modelPipeline"

# ImgBB Configuration (durable URLs for generated images)
IMGBB_API_KEY = os.environ.get("IMGBB_API_KEY")
IMGBB_UPLOAD_URL = "https://api.imgbb.com/1/upload"

# --- Vendor Endpoints ---
# Placeholders: {model}, {project}, {location}
GEMINI_GENERATE_CONTENT_URL = (
    "https://generativelanguage.googleapis.com/v1/models/{model}:generateContent"
)
GEMINI_GENERATE_IMAGE_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateImage"
)
VERTEX_GENERATE_CONTENT_URL = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
    "/locations/{location}/publishers/google/models/{model}:generateContent"
)
VERTEX_PREDICT_URL = (
    "https://{location}-aiplatform.googleapis.com/v1/projects/{project}"
    "/locations/{location}/publishers/google/models/{model}:predict"
)

# --- HTTP Routes served by the gateway ---
CHAT_ROUTE = "/api/chat"
IMAGEN_ROUTE = "/api/generateImage"
NANOBANANA_ROUTE = "/api/generateNanobananaImage"
UPLOAD_ROUTE = "/api/uploadImage"
GENERATE_ROUTE = "/v1/generate"

# --- Model Table ---
# Partitioned by capability class. Keys are lower-case model identifiers as
# requested by the UI; "vendor_model" is the name sent to Google.
# Providers: "gemini" (Generative Language generateContent),
# "vertex_gemini" (Vertex AI generateContent), "imagen" (Vertex AI predict),
# "legacy_gemini" (Generative Language generateImage).
MODEL_TABLE = {
    "text": {
        "gemini-2.5-flash": {"provider": "gemini", "vendor_model": "gemini-2.5-flash"},
        "gemini-2.5-pro": {"provider": "gemini", "vendor_model": "gemini-2.5-pro"},
        "gemini-2.5-flash-lite": {
            "provider": "gemini",
            "vendor_model": "gemini-2.5-flash-lite",
        },
        "gemini-1.5-pro": {"provider": "gemini", "vendor_model": "gemini-1.5-pro"},
        "gemini-1.5-flash": {"provider": "gemini", "vendor_model": "gemini-1.5-flash"},
    },
    "image": {
        "gemini-2.5-flash-image": {
            "provider": "vertex_gemini",
            "vendor_model": "gemini-2.5-flash-image",
            "default_modality": "IMAGE",
        },
        # "Nanobanana" is the product name of gemini-2.5-flash-image
        "gemini-2.5-nano-banana": {
            "provider": "vertex_gemini",
            "vendor_model": "gemini-2.5-flash-image",
            "default_modality": "IMAGE",
        },
        "gemini-2.5-flash-image-multimodal": {
            "provider": "vertex_gemini",
            "vendor_model": "gemini-2.5-flash-image",
            "default_modality": "TEXT_AND_IMAGE",
        },
        "imagen-4": {
            "provider": "imagen",
            "vendor_model": "imagen-4",
            "default_modality": "IMAGE",
        },
        "imagen-3": {
            "provider": "legacy_gemini",
            "vendor_model": "imagen-3.0-generate-002",
            "default_modality": "IMAGE",
        },
    },
}

# Default models if not specified or if the identifier is unknown
DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
# One-shot fallback target for /api/chat when the requested model is unavailable
FALLBACK_CHAT_MODEL = "gemini-2.5-flash"

# Hard-coded generation defaults (lowest precedence)
DEFAULT_GENERATION_CONFIG = {
    "temperature": 0.7,
    "top_p": 0.95,
    "max_output_tokens": 8192,
    "aspect_ratio": "1:1",
    "sample_count": 1,
}

# Prompt pipeline ("model before") defaults
DEFAULT_PIPELINE_CONFIG = {
    "enabled": False,
    "pre_model": None,
    "instructions": "",
    "extra_prompt": "",
    "temperature": 0.4,
    "top_p": 0.9,
}

# --- Other Configurations ---
REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", 60))  # Generation calls, seconds
CONFIG_REQUEST_TIMEOUT = float(os.environ.get("CONFIG_REQUEST_TIMEOUT", 15))
DEBUG_MODE = os.environ.get("DEBUG_MODE", "false").lower() == "true"
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
# Raw vendor responses are truncated to this many characters in error payloads
RAW_EXCERPT_LIMIT = 1000
