"""Header construction for backend requests."""

from core.config import ClientSettings
from core.exceptions import ConfigurationError, InvalidRequest
from core.request_types import Credentials

JSON_CONTENT_TYPE = "application/json; charset=UTF-8"


def _is_header_safe(value: str) -> bool:
    # HTTP/1.1 field values are encoded as ASCII by httpx
    return value.isascii() and value.isprintable()


class HeaderBuilder:
    """Build backend headers for the credential exchange and proxied calls."""

    def __init__(self, client: ClientSettings | None = None) -> None:
        self._client = client or ClientSettings()

    def build_auth_headers(self, credentials: Credentials, correlation_id: str) -> dict[str, str]:
        """Credential pair as headers; no bearer token exists yet.

        Raises:
            ConfigurationError: a configured value cannot be sent as a header.
        """
        headers = {
            "Content-Type": JSON_CONTENT_TYPE,
            "Accept": JSON_CONTENT_TYPE,
            "X-API-Key": credentials.key,
            "X-API-Secret": credentials.secret,
            "X-Request-Source": self._client.request_source,
            "X-Plugin-Version": self._client.plugin_version,
            "X-Client-Id": self._client.client_id,
            "X-Correlation-Id": correlation_id,
        }
        for name, value in headers.items():
            if not _is_header_safe(value):
                raise ConfigurationError(f"{name} must be printable ASCII")
        return headers

    def build_backend_headers(
        self,
        token: str,
        correlation_id: str,
        extra_headers: dict[str, str] | None = None,
    ) -> dict[str, str]:
        """Headers for every proxied call, with caller extras merged last.

        Raises:
            InvalidRequest: a header value is not printable ASCII.
        """
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": JSON_CONTENT_TYPE,
            "Accept": JSON_CONTENT_TYPE,
            "X-Request-Source": self._client.request_source,
            "X-Plugin-Version": self._client.plugin_version,
            "X-Client-Id": self._client.client_id,
            "X-Correlation-Id": correlation_id,
        }
        for key, value in (extra_headers or {}).items():
            # Replace case-insensitively so a caller's x-correlation-id wins cleanly
            for existing in [k for k in headers if k.lower() == key.lower()]:
                del headers[existing]
            headers[key] = str(value)
        for name, value in headers.items():
            if not _is_header_safe(value):
                raise InvalidRequest("invalid_header", f"{name} header must be printable ASCII")
        return headers
