"""Signing workflow orchestration on top of the request proxy."""

import re
from typing import Any
from urllib.parse import quote, urlparse
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from core.config import SigningSettings
from core.exceptions import InvalidRequest
from core.protocols import RequestLogger
from core.request_types import Failure, FailureKind, ProxyResult, Success
from core.validators import is_valid_identifier, validate_fodselsnummer
from services.proxy import RequestProxy

SIGNING_PATH = "/api/v1.0/wordpress/signing"
SIGNING_REQUEST_PATH = "/api/v1.0/signing/{request_id}"
SIGNING_COMPLETION_PATH = "/api/v1.0/signing/{request_id}/check-completion"
BANKID_FLOW_PATH = "/api/v1.0/bankid/flow/signing"
BANKID_STATUS_PATH = "/api/v1.0/bankid/auth/status/{session_id}"
BANKID_CANCEL_PATH = "/api/v1.0/bankid/auth/cancel"

IDEMPOTENCY_KEY_RE = re.compile(r"^[\x21-\x7e]{1,128}$")

# Payload field -> error code returned when pydantic rejects it
FIELD_ERROR_CODES = {
    "signerEmail": "invalid_signer_email",
    "idempotencyKey": "invalid_idempotency_key",
}

# Optional browser field -> backend field, forwarded only when non-empty
OPTIONAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("document_id", "DocumentId"),
    ("phone", "SignerPhone"),
    ("date_of_birth", "DateOfBirth"),
    ("first_name", "FirstName"),
    ("last_name", "LastName"),
    ("address", "Address"),
    ("city", "City"),
    ("zip", "Zip"),
    ("billing_address", "BillingAddress"),
    ("billing_city", "BillingCity"),
    ("billing_zip", "BillingZip"),
    ("takeover_date", "TakeoverDate"),
    ("meter_number", "MeterNumber"),
    ("serial_number", "SerialNumber"),
    ("company_name", "CompanyName"),
    ("organization_number", "OrganizationNumber"),
    ("sports_team", "SupportedSportsTeam"),
    ("product_id", "ProductId"),
    ("supplier_id", "SupplierId"),
)


class SigningRequestPayload(BaseModel):
    """Browser payload for ``POST /signing`` (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    signer_name: str = Field(default="", alias="signerName")
    signer_email: EmailStr = Field(alias="signerEmail")
    title: str = ""
    document_id: str | None = Field(default=None, alias="documentId")
    phone: str | None = None
    date_of_birth: str | None = Field(default=None, alias="dateOfBirth")
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    address: str | None = None
    city: str | None = None
    zip: str | None = None
    billing_address: str | None = Field(default=None, alias="billingAddress")
    billing_city: str | None = Field(default=None, alias="billingCity")
    billing_zip: str | None = Field(default=None, alias="billingZip")
    takeover_date: str | None = Field(default=None, alias="takeoverDate")
    meter_number: str | None = Field(default=None, alias="meterNumber")
    serial_number: str | None = Field(default=None, alias="serialNumber")
    company_name: str | None = Field(default=None, alias="companyName")
    organization_number: str | None = Field(default=None, alias="organizationNumber")
    sports_team: str | None = Field(default=None, alias="sportsTeam")
    marketing_consent_email: bool = Field(default=False, alias="marketingConsentEmail")
    marketing_consent_sms: bool = Field(default=False, alias="marketingConsentSms")
    fodselsnummer: str | None = None
    product_id: str | None = Field(default=None, alias="productId")
    supplier_id: str | None = Field(default=None, alias="supplierId")
    idempotency_key: str | None = Field(default=None, alias="idempotencyKey")
    correlation_id: str | None = Field(default=None, alias="correlationId")
    redirect_uri: str | None = Field(default=None, alias="redirectUri")

    @field_validator(
        "title", "document_id", "phone", "date_of_birth", "zip", "billing_zip",
        "organization_number", "fodselsnummer", "product_id", "supplier_id",
        "meter_number", "serial_number", "takeover_date",
        mode="before",
    )
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # Browsers send numeric ids, zip codes and national ids as numbers
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("idempotency_key")
    @classmethod
    def _header_safe(cls, value: str | None) -> str | None:
        # Forwarded verbatim as the X-Idempotency-Key header
        if value and not IDEMPOTENCY_KEY_RE.match(value):
            raise ValueError("must be 1-128 printable ASCII characters")
        return value or None


class SigningService:
    """Validate browser requests and forward them through the proxy."""

    def __init__(
        self,
        proxy: RequestProxy,
        logger: RequestLogger,
        settings: SigningSettings | None = None,
    ) -> None:
        self._proxy = proxy
        self._logger = logger
        self._settings = settings or SigningSettings()

    async def create_signing_request(self, payload: dict[str, Any], correlation_id: str) -> ProxyResult:
        """Create a signing request; retried submissions reuse the idempotency key."""
        try:
            request = self._parse(payload)
            backend_payload = self.build_backend_payload(request, correlation_id)
        except InvalidRequest as e:
            return self._invalid(e, correlation_id, SIGNING_PATH)

        idempotency_key = request.idempotency_key or f"wp-signing-{uuid4()}"
        return await self._proxy.proxy(
            "POST",
            SIGNING_PATH,
            backend_payload,
            {"X-Idempotency-Key": idempotency_key},
            correlation_id=correlation_id,
        )

    def build_backend_payload(self, request: SigningRequestPayload, correlation_id: str) -> dict[str, Any]:
        """Translate the browser payload into the backend's PascalCase contract."""
        if len(request.signer_name) < 2:
            raise InvalidRequest(
                "invalid_signer_name",
                "Signer name is required and must be at least two characters.",
            )

        personal_number = None
        if request.fodselsnummer:
            result = validate_fodselsnummer(request.fodselsnummer)
            if not result.is_valid:
                raise InvalidRequest("invalid_fodselsnummer", result.error or "Invalid fødselsnummer")
            personal_number = result.cleaned

        supplier = self._settings.supplier_name
        payload: dict[str, Any] = {
            "Title": request.title or f"Signeringsforespørsel for {request.signer_name}",
            "Description": f"Signeringsforespørsel fra {supplier}",
            "SignerEmail": request.signer_email,
            "SignerName": request.signer_name,
            "CorrelationId": correlation_id,
            "Environment": self._settings.environment,
        }
        for attr, backend_field in OPTIONAL_FIELDS:
            value = getattr(request, attr)
            if value not in (None, ""):
                payload[backend_field] = value

        # Consents are always sent, even when false
        payload["MarketingConsentEmail"] = request.marketing_consent_email
        payload["MarketingConsentSms"] = request.marketing_consent_sms

        if personal_number:
            payload["PersonalNumber"] = personal_number

        redirect_uri = request.redirect_uri or self._settings.redirect_uri
        if redirect_uri and _is_http_url(redirect_uri):
            payload["Appearance"] = {
                "Ui": {
                    "SignatoryRedirectUri": redirect_uri,
                    "Language": self._settings.language,
                }
            }
        return payload

    async def get_signing_status(self, request_id: str, correlation_id: str) -> ProxyResult:
        if not request_id or not is_valid_identifier(request_id):
            return self._invalid(
                InvalidRequest("invalid_request_id", "Signing request ID is required."),
                correlation_id,
                SIGNING_REQUEST_PATH,
            )
        return await self._proxy.proxy(
            "GET",
            SIGNING_REQUEST_PATH.format(request_id=quote(request_id, safe="")),
            correlation_id=correlation_id,
        )

    async def initiate_bankid(self, payload: dict[str, Any], correlation_id: str) -> ProxyResult:
        """Return the signing URL when the request has one, else start a BankID flow."""
        request_id = _string_field(payload, "requestId")
        if not request_id or not is_valid_identifier(request_id):
            return self._invalid(
                InvalidRequest(
                    "invalid_request_id",
                    "Signing request ID is required to initiate BankID.",
                ),
                correlation_id,
                BANKID_FLOW_PATH,
            )

        existing = await self.get_signing_status(request_id, correlation_id)
        if isinstance(existing, Failure):
            return existing

        data = existing.body if isinstance(existing.body, dict) else {}
        signing_url = data.get("SigningUrl") or data.get("signingUrl") or data.get("signing_url")
        if signing_url:
            session_id = data.get("CriiptoOrderId") or data.get("criiptoOrderId") or request_id
            return Success(
                status=200,
                body={
                    "auth_url": signing_url,
                    "session_id": session_id,
                    "correlation_id": correlation_id,
                },
            )

        return await self._proxy.proxy(
            "POST",
            BANKID_FLOW_PATH,
            {"DocumentId": request_id, "PersonalNumber": "", "EndUserIp": ""},
            correlation_id=correlation_id,
        )

    async def get_bankid_status(self, session_id: str, correlation_id: str) -> ProxyResult:
        if not session_id or not is_valid_identifier(session_id):
            return self._invalid(
                InvalidRequest("invalid_session_id", "BankID session ID is required."),
                correlation_id,
                BANKID_STATUS_PATH,
            )
        return await self._proxy.proxy(
            "GET",
            BANKID_STATUS_PATH.format(session_id=quote(session_id, safe="")),
            correlation_id=correlation_id,
        )

    async def cancel_bankid_session(self, payload: dict[str, Any], correlation_id: str) -> ProxyResult:
        session_id = _string_field(payload, "sessionId")
        if not session_id:
            return self._invalid(
                InvalidRequest("invalid_session_id", "BankID session ID is required to cancel."),
                correlation_id,
                BANKID_CANCEL_PATH,
            )
        return await self._proxy.proxy(
            "POST",
            BANKID_CANCEL_PATH,
            {"orderRef": session_id},
            correlation_id=correlation_id,
        )

    async def trigger_completion(self, request_id: str, correlation_id: str) -> ProxyResult:
        """Ask the backend to check completion so the post-signing email goes out."""
        if not request_id or not is_valid_identifier(request_id):
            return self._invalid(
                InvalidRequest("invalid_request_id", "Signing request ID is required."),
                correlation_id,
                SIGNING_COMPLETION_PATH,
            )
        return await self._proxy.proxy(
            "POST",
            SIGNING_COMPLETION_PATH.format(request_id=quote(request_id, safe="")),
            correlation_id=correlation_id,
        )

    def _parse(self, payload: dict[str, Any]) -> SigningRequestPayload:
        try:
            return SigningRequestPayload.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            loc = first.get("loc", ())
            code = FIELD_ERROR_CODES.get(str(loc[0]) if loc else "", "invalid_payload")
            if code == "invalid_signer_email":
                message = "Please provide a valid signer email."
            else:
                field = ".".join(str(part) for part in loc)
                message = f"{field}: {first.get('msg', 'invalid value')}"
            raise InvalidRequest(code, message) from e

    def _invalid(self, error: InvalidRequest, correlation_id: str, route: str) -> Failure:
        """Rejected before reaching the proxy, so logged here."""
        self._logger.log_error(route, 400, f"{error.code}: {error.message}")
        return Failure(
            kind=FailureKind.INVALID_REQUEST,
            http_status=400,
            message=error.message,
            correlation_id=correlation_id,
            code=error.code,
        )


def _string_field(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key) if isinstance(payload, dict) else None
    return value.strip() if isinstance(value, str) else ""


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
