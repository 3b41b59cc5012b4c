"""Configuration models and loading."""

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from core.request_types import Credentials

CONFIG_DIR = Path.home() / ".config" / "utilitysign-proxy"
CONFIG_FILE = CONFIG_DIR / "config.json"

PLUGIN_VERSION = "1.0.4"


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False
    keep_alive_timeout: int = 5


class BackendSettings(BaseModel):
    base_url: str = "https://api.utilitysign.devora.no"
    api_key: str = ""
    api_secret: str = ""
    auth_path: str = "/api/v1/wordpress/authenticate"
    timeout_seconds: float = Field(default=90.0, gt=0)


class ClientSettings(BaseModel):
    request_source: str = "wordpress-plugin"
    client_id: str = "utilitysign-wordpress-plugin"
    plugin_version: str = PLUGIN_VERSION


class TokenSettings(BaseModel):
    store: Literal["memory", "file"] = "memory"
    refresh_margin_seconds: float = Field(default=60.0, ge=0)
    default_ttl_seconds: float = Field(default=3600.0, gt=0)


class ErrorSettings(BaseModel):
    # Backend codes that need admin action; surfaced as 400 instead of 503
    configuration_error_codes: list[str] = Field(
        default_factory=lambda: [
            "INTEGRATION_NOT_CONFIGURED",
            "CRIIPTO_NOT_CONFIGURED",
            "CRIIPTO_SUPPLIER_NOT_CONFIGURED",
        ]
    )


class SigningSettings(BaseModel):
    environment: Literal["production", "staging"] = "production"
    supplier_name: str = "UtilitySign"
    redirect_uri: str = ""
    language: str = "NB_NO"


class Config(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    backend: BackendSettings = Field(default_factory=BackendSettings)
    client: ClientSettings = Field(default_factory=ClientSettings)
    token: TokenSettings = Field(default_factory=TokenSettings)
    errors: ErrorSettings = Field(default_factory=ErrorSettings)
    signing: SigningSettings = Field(default_factory=SigningSettings)

    def credentials(self) -> Credentials:
        """Snapshot the credential pair used for the process lifetime."""
        return Credentials(
            key=self.backend.api_key.strip(),
            secret=self.backend.api_secret.strip(),
            base_url=self.backend.base_url.rstrip("/"),
        )


def load_config(config_file: Path = CONFIG_FILE) -> Config:
    """Load configuration from JSON file, creating default if needed."""
    if not config_file.exists():
        config_file.parent.mkdir(parents=True, exist_ok=True)
        default = Config()
        config_file.write_text(default.model_dump_json(indent=2))
        config_file.chmod(0o600)
        return default

    try:
        data = json.loads(config_file.read_text())
        return Config.model_validate(data)
    except (json.JSONDecodeError, ValidationError):
        # Backup corrupted config and recreate default
        backup = config_file.with_suffix(".json.bak")
        config_file.rename(backup)
        default = Config()
        config_file.write_text(default.model_dump_json(indent=2))
        config_file.chmod(0o600)
        return default
