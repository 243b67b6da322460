from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from pairpush.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

DEFAULT_CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


def _env_value(match: re.Match[str]) -> str:
    var_name = match.group(1)
    try:
        return os.environ[var_name]
    except KeyError:
        msg = f"Environment variable '{var_name}' referenced in config file but not set"
        raise KeyError(msg) from None


def load_config_from_yaml(config_path: str | Path) -> dict:
    """
    Load YAML configuration file and expand environment variables.

    Args:
        config_path: Path to the YAML config file

    Returns:
        Dictionary containing the parsed configuration

    Raises:
        ConfigurationError: If the file is missing, invalid, or references unset variables
    """
    config_file = Path(config_path)
    if not config_file.exists():
        msg = f"Configuration file not found at {config_path}"
        raise ConfigurationError(msg, context={"config_file": str(config_path)})

    with open(config_file) as f:
        config_str = f.read()

    try:
        config_dict = yaml.safe_load(config_str)
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {config_file.name}: {e}"
        raise ConfigurationError(msg, context={"config_file": str(config_path)}) from None

    if config_dict is None:
        return {}

    if not isinstance(config_dict, dict):
        msg = f"{config_file.name} must contain a YAML mapping at root level"
        raise ConfigurationError(msg, context={"config_file": str(config_path)})

    # Expanded after parsing: values such as PEM keys span several lines
    try:
        return expand_config_values(config_dict)
    except KeyError as e:
        msg = f"Error expanding environment variables in {config_file.name}: {e}"
        raise ConfigurationError(msg, context={"config_file": str(config_path)}) from None


def expand_config_values(value: Any) -> Any:
    """
    Expand ${VAR_NAME} placeholders inside every string of a parsed config.

    Raises:
        KeyError: If a referenced environment variable is not set
    """
    if isinstance(value, str):
        return _ENV_VAR_PATTERN.sub(_env_value, value)
    if isinstance(value, dict):
        return {key: expand_config_values(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_config_values(item) for item in value]
    return value


@dataclass(frozen=True)
class ServiceAccount:
    """Firebase service-account credentials used for the JWT-bearer grant."""

    project_id: str
    client_email: str
    private_key: str


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=None,
        case_sensitive=False,
    )

    environment: Literal["development", "production"] = "development"

    # Which routers this process serves
    components: list[Literal["registrar", "dispatcher"]] = Field(default=["registrar", "dispatcher"])
    host: str = "0.0.0.0"
    port: int = 8000

    # Firebase service account (Dispatcher only)
    firebase_project_id: str | None = None
    firebase_client_email: str | None = None
    firebase_private_key: str | None = None

    # Push provider endpoints
    oauth_token_uri: str = "https://oauth2.googleapis.com/token"
    fcm_scope: str = "https://www.googleapis.com/auth/firebase.messaging"
    fcm_base_url: str = "https://fcm.googleapis.com"
    assertion_lifetime_seconds: int = 3600

    # Hosted backend (token store)
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    device_tokens_table: str = "device_tokens"
    token_store_backend: Literal["supabase", "file"] = "supabase"
    token_store_file: Path = Field(
        default=Path("/data/device_tokens.json"),
        description="Path to the JSON token file (file backend only)",
    )

    # Outbound HTTP timeouts (in seconds)
    token_exchange_timeout_seconds: float = 10.0
    delivery_timeout_seconds: float = 10.0
    store_timeout_seconds: float = 10.0

    # Optional shared bearer token for the POST endpoints
    auth_token: str | None = None

    cors_allowed_origins: list[str] = Field(default=["*"])
    cors_allowed_methods: list[str] = Field(default=["POST", "GET", "OPTIONS"])
    cors_allowed_headers: list[str] = Field(default=DEFAULT_CORS_HEADERS)

    # Observability
    log_level: str = "INFO"
    log_json: bool = True

    def service_account(self) -> ServiceAccount:
        """
        Return the Firebase service account, failing if any part is missing.

        Raises:
            ConfigurationError: If project id, client email or private key is unset
        """
        missing = [
            name
            for name in ("firebase_project_id", "firebase_client_email", "firebase_private_key")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "Firebase credentials not configured",
                context={"missing": missing},
            )

        return ServiceAccount(
            project_id=self.firebase_project_id,  # type: ignore[arg-type]
            client_email=self.firebase_client_email,  # type: ignore[arg-type]
            private_key=self.firebase_private_key,  # type: ignore[arg-type]
        )

    def has_service_account(self) -> bool:
        try:
            self.service_account()
        except ConfigurationError:
            return False
        return True

    def require_token_store(self) -> None:
        """Validate the settings the selected token store backend needs."""
        if self.token_store_backend == "file":
            return

        missing = [
            name
            for name in ("supabase_url", "supabase_service_role_key")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "Token store credentials not configured",
                context={"backend": self.token_store_backend, "missing": missing},
            )


# YAML section -> {yaml key: settings field}
_YAML_SECTIONS: dict[str, dict[str, str]] = {
    "server": {
        "components": "components",
        "host": "host",
        "port": "port",
    },
    "firebase": {
        "project_id": "firebase_project_id",
        "client_email": "firebase_client_email",
        "private_key": "firebase_private_key",
        "token_uri": "oauth_token_uri",
        "scope": "fcm_scope",
        "base_url": "fcm_base_url",
        "assertion_lifetime_seconds": "assertion_lifetime_seconds",
    },
    "supabase": {
        "url": "supabase_url",
        "service_role_key": "supabase_service_role_key",
        "table": "device_tokens_table",
    },
    "token_store": {
        "backend": "token_store_backend",
        "file": "token_store_file",
    },
    "http": {
        "token_exchange_timeout_seconds": "token_exchange_timeout_seconds",
        "delivery_timeout_seconds": "delivery_timeout_seconds",
        "store_timeout_seconds": "store_timeout_seconds",
    },
    "auth": {
        "token": "auth_token",
    },
    "cors": {
        "allowed_origins": "cors_allowed_origins",
        "allowed_methods": "cors_allowed_methods",
        "allowed_headers": "cors_allowed_headers",
    },
    "logging": {
        "level": "log_level",
        "json": "log_json",
    },
}


def flatten_config(config_dict: dict) -> dict[str, object]:
    """
    Flatten the nested YAML structure into Settings field names.

    Keys that are absent from the YAML are left out so the environment
    can still supply them.
    """
    flat_config: dict[str, object] = {}

    if "environment" in config_dict:
        flat_config["environment"] = config_dict["environment"]

    for section, fields in _YAML_SECTIONS.items():
        values = config_dict.get(section)
        if not isinstance(values, dict):
            continue
        for yaml_key, field_name in fields.items():
            if yaml_key in values and values[yaml_key] is not None:
                flat_config[field_name] = values[yaml_key]

    return flat_config


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Build Settings from an optional YAML file plus the environment.

    Args:
        config_path: YAML config path. Falls back to the CONFIG_PATH
                     environment variable; without either, settings come
                     from the environment only.

    Raises:
        ConfigurationError: If the YAML file or resulting settings are invalid
    """
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH") or None

    flat_config: dict[str, object] = {}
    if config_path is not None:
        flat_config = flatten_config(load_config_from_yaml(config_path))

    try:
        settings = Settings(**flat_config)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation error: {e}",
            context={"config_file": str(config_path) if config_path else None},
        ) from e

    logger.debug(
        "Settings loaded",
        extra={
            "config_file": str(config_path) if config_path else None,
            "token_store_backend": settings.token_store_backend,
            "firebase_configured": settings.has_service_account(),
        },
    )
    return settings
