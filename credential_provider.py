# credential_provider.py
import base64
import json
import logging
import time

import aiofiles
import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from config import (
    CONFIG_REQUEST_TIMEOUT,
    GOOGLE_AUTH_SCOPES,
    GOOGLE_SERVICE_ACCOUNT_FILE,
    GOOGLE_SERVICE_ACCOUNT_JSON,
    GOOGLE_TOKEN_URI,
    TOKEN_LIFETIME_SECONDS,
    TOKEN_REFRESH_MARGIN_SECONDS,
)
from errors import ConfigurationError, UpstreamError, UpstreamTimeout
from models import AccessToken

log = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
REQUIRED_SERVICE_ACCOUNT_FIELDS = ("client_email", "private_key")


def _parse_service_account(raw: str, source: str) -> dict:
    try:
        service_account = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid service account in {source}: must be valid JSON ({e})")
    if not isinstance(service_account, dict):
        raise ConfigurationError(f"Invalid service account in {source}: expected a JSON object")
    missing = [f for f in REQUIRED_SERVICE_ACCOUNT_FIELDS if not service_account.get(f)]
    if missing:
        raise ConfigurationError(
            f"Service account in {source} is missing: {', '.join(missing)}"
        )
    return service_account


async def load_service_account(
    inline_json: str = GOOGLE_SERVICE_ACCOUNT_JSON,
    file_path: str = GOOGLE_SERVICE_ACCOUNT_FILE,
) -> dict:
    """
    Loads the service account key. The inline JSON (GOOGLE_SERVICE_ACCOUNT_JSON)
    takes precedence over the key file (GOOGLE_SERVICE_ACCOUNT_FILE).
    Raises ConfigurationError when neither is usable.
    """
    if inline_json:
        return _parse_service_account(inline_json, "GOOGLE_SERVICE_ACCOUNT_JSON")

    if file_path:
        try:
            async with aiofiles.open(file_path, mode="r", encoding="utf-8") as file_handle:
                file_content = await file_handle.read()
        except FileNotFoundError:
            raise ConfigurationError(f"Service account file not found: {file_path}")
        except OSError as e:
            raise ConfigurationError(f"Could not read service account file {file_path}: {e}")
        return _parse_service_account(file_content, file_path)

    raise ConfigurationError(
        "Missing GOOGLE_SERVICE_ACCOUNT_JSON (or GOOGLE_SERVICE_ACCOUNT_FILE) environment variable"
    )


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def build_jwt_assertion(service_account: dict, scopes=None, now: int = None) -> str:
    """Signs an RS256 JWT assertion for the OAuth2 JWT-bearer grant."""
    now = int(time.time()) if now is None else int(now)
    header = {"alg": "RS256", "typ": "JWT"}
    if service_account.get("private_key_id"):
        header["kid"] = service_account["private_key_id"]
    payload = {
        "iss": service_account["client_email"],
        "sub": service_account["client_email"],
        "scope": " ".join(scopes or GOOGLE_AUTH_SCOPES),
        "aud": service_account.get("token_uri") or GOOGLE_TOKEN_URI,
        "iat": now,
        "exp": now + TOKEN_LIFETIME_SECONDS,
    }
    signing_input = (
        f"{_b64url(json.dumps(header, separators=(',', ':')).encode())}."
        f"{_b64url(json.dumps(payload, separators=(',', ':')).encode())}"
    )

    # Keys pasted into env vars often carry literal "\n" sequences
    pem = service_account["private_key"].replace("\\n", "\n").encode("utf-8")
    try:
        private_key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"Invalid service account private key: {e}")

    signature = private_key.sign(
        signing_input.encode("ascii"), padding.PKCS1v15(), hashes.SHA256()
    )
    return f"{signing_input}.{_b64url(signature)}"


class ServiceAccountCredentialProvider:
    """Exchanges a signed service-account assertion for an OAuth2 access token."""

    def __init__(
        self,
        service_account: dict = None,
        scopes=None,
        http_client: httpx.AsyncClient = None,
        clock=time.time,
        timeout: float = CONFIG_REQUEST_TIMEOUT,
    ):
        self._service_account = service_account
        self.scopes = scopes or GOOGLE_AUTH_SCOPES
        self._http_client = http_client
        self._clock = clock
        self.timeout = timeout

    async def _get_service_account(self) -> dict:
        if self._service_account is None:
            self._service_account = await load_service_account()
        return self._service_account

    async def _post(self, url, data):
        if self._http_client is not None:
            return await self._http_client.post(url, data=data, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(url, data=data)

    async def get_access_token(self) -> AccessToken:
        service_account = await self._get_service_account()
        now = self._clock()
        assertion = build_jwt_assertion(service_account, self.scopes, now=now)
        token_uri = service_account.get("token_uri") or GOOGLE_TOKEN_URI

        try:
            response = await self._post(
                token_uri, {"grant_type": JWT_BEARER_GRANT, "assertion": assertion}
            )
        except httpx.TimeoutException:
            raise UpstreamTimeout("OAuth2 token endpoint", self.timeout)
        except httpx.RequestError as e:
            raise UpstreamError("OAuth2 token endpoint", 503, f"Connection error: {e}")

        if response.status_code >= 400:
            raise UpstreamError("OAuth2 token endpoint", response.status_code, response.text)

        token_data = response.json()
        access_token = token_data.get("access_token")
        if not access_token:
            raise UpstreamError(
                "OAuth2 token endpoint", response.status_code, "Response has no access_token"
            )
        expires_in = int(token_data.get("expires_in", TOKEN_LIFETIME_SECONDS))
        return AccessToken(
            token=access_token, expires_at_epoch_ms=int((now + expires_in) * 1000)
        )


class AccessTokenCache:
    """
    Single-slot cache in front of a credential provider.
    A cached token is reused while now < expires_at - refresh margin.
    Concurrent refreshes are harmless: issuing a new token never revokes the
    previous one, so the last writer simply wins.
    """

    def __init__(
        self,
        provider,
        clock=time.time,
        refresh_margin_seconds: int = TOKEN_REFRESH_MARGIN_SECONDS,
    ):
        self.provider = provider
        self._clock = clock
        self.refresh_margin_ms = refresh_margin_seconds * 1000
        self._cached = None

    def _is_valid(self, token: AccessToken) -> bool:
        now_ms = self._clock() * 1000
        return now_ms < token.expires_at_epoch_ms - self.refresh_margin_ms

    @property
    def cached(self):
        return self._cached

    def invalidate(self):
        self._cached = None

    async def get_token(self) -> str:
        cached = self._cached
        if cached is not None and self._is_valid(cached):
            return cached.token

        log.info("Requesting a new Google access token")
        try:
            fresh = await self.provider.get_access_token()
        except Exception as e:
            log.error(f"Error getting access token: {e}", exc_info=True)
            raise
        self._cached = fresh
        return fresh.token
