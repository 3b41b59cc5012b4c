"""Backend response field aliases for browser compatibility."""

import copy
from typing import Any

# Backend (PascalCase) -> browser-facing name
DEFAULT_FIELD_MAP: tuple[tuple[str, str], ...] = (
    ("SigningUrl", "signing_url"),
    ("Id", "id"),
    ("DocumentId", "document_id"),
    ("SignerEmail", "signer_email"),
    ("SignerName", "signer_name"),
    ("Status", "status"),
    ("CreatedAt", "created_at"),
    ("ExpiresAt", "expires_at"),
    ("CompletedAt", "completed_at"),
    ("CriiptoOrderId", "criiptoOrderId"),
)


class FieldMapper:
    """Add browser-facing aliases without dropping the backend's own fields."""

    def __init__(self, field_map: tuple[tuple[str, str], ...] = DEFAULT_FIELD_MAP) -> None:
        self.field_map = field_map

    def map_response(self, data: Any) -> Any:
        """Return a mapped copy; the input is never modified."""
        if isinstance(data, dict):
            return self._map_object(data)
        if isinstance(data, list):
            return [self._map_object(item) if isinstance(item, dict) else copy.deepcopy(item) for item in data]
        return copy.deepcopy(data)

    def _map_object(self, data: dict[str, Any]) -> dict[str, Any]:
        mapped = copy.deepcopy(data)
        for backend_field, caller_field in self.field_map:
            if backend_field in mapped and caller_field not in mapped:
                mapped[caller_field] = mapped[backend_field]
        return mapped
