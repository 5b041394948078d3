# errors.py
import json

from config import RAW_EXCERPT_LIMIT


def summarize_raw(raw, limit: int = RAW_EXCERPT_LIMIT) -> str:
    """Serializes a vendor response (dict or text) and truncates it for diagnostics."""
    if raw is None:
        return ""
    if isinstance(raw, (dict, list)):
        try:
            text = json.dumps(raw)
        except (TypeError, ValueError):
            text = str(raw)
    else:
        text = str(raw)
    if len(text) > limit:
        return f"{text[:limit]}... [truncated {len(text) - limit} chars]"
    return text


class GatewayError(Exception):
    """Base class for every error the gateway surfaces to a caller."""

    status_code = 500
    retryable = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {"error": self.message, "type": type(self).__name__}


class ConfigurationError(GatewayError):
    """Missing or invalid credential secret. Fatal."""

    status_code = 500


class ModelDisabled(GatewayError):
    status_code = 403

    def __init__(self, model_id: str):
        super().__init__(
            f'Model "{model_id}" is currently disabled. Please enable it in Model Settings.'
        )
        self.model_id = model_id


class UnsupportedModel(GatewayError):
    status_code = 400

    def __init__(self, model_id: str, served_by: str, correct_route: str):
        super().__init__(
            f'Wrong endpoint: model "{model_id}" is not supported by {served_by}. '
            f"Use {correct_route} for this model."
        )
        self.model_id = model_id
        self.correct_route = correct_route

    def to_dict(self):
        payload = super().to_dict()
        payload["endpoint"] = self.correct_route
        return payload


class UpstreamError(GatewayError):
    """Non-2xx response from a vendor endpoint."""

    status_code = 502

    def __init__(self, vendor: str, status: int, body):
        super().__init__(f"{vendor} API error: {status} {summarize_raw(body)}")
        self.vendor = vendor
        self.status = status
        self.body = body

    def to_dict(self):
        payload = super().to_dict()
        payload["upstream_status"] = self.status
        payload["details"] = summarize_raw(self.body)
        return payload


class ModelUnavailable(UpstreamError):
    """
    400/404 from a generation endpoint: Google's way of reporting an unknown
    model or one this project cannot use. Raised only by the generation client.
    """


class UpstreamTimeout(GatewayError):
    status_code = 504
    retryable = True

    def __init__(self, vendor: str, timeout: float):
        super().__init__(f"{vendor} did not respond within {timeout}s")
        self.vendor = vendor
        self.timeout = timeout


class MissingPayloadError(GatewayError):
    """2xx from the vendor, but the expected payload could not be located."""

    status_code = 502

    def __init__(self, what: str, attempted_paths, raw_response):
        self.attempted_paths = list(attempted_paths)
        self.raw_excerpt = summarize_raw(raw_response)
        super().__init__(
            f"No {what} found in response (tried: {', '.join(self.attempted_paths)})"
        )

    def to_dict(self):
        payload = super().to_dict()
        payload["attempted_paths"] = self.attempted_paths
        payload["raw_excerpt"] = self.raw_excerpt
        return payload
