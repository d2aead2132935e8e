"""Configuration management for the organisation admin service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

_ROOT = Path(__file__).resolve().parent.parent

# YAML key -> environment variable
_ENV_KEYS: Dict[str, str] = {
    "supabase_url": "SUPABASE_URL",
    "service_role_key": "SUPABASE_SERVICE_ROLE_KEY",
    "resend_api_key": "RESEND_API_KEY",
    "resend_api_url": "RESEND_API_URL",
    "sender": "ORGADMIN_SENDER",
    "management_mailbox": "ORGADMIN_MANAGEMENT_MAILBOX",
    "public_base_url": "ORGADMIN_PUBLIC_URL",
    "decision_secret": "ORGADMIN_DECISION_SECRET",
    "decision_ttl_hours": "ORGADMIN_DECISION_TTL_HOURS",
    "database_path": "ORGADMIN_DB_PATH",
    "profile_delete_attempts": "ORGADMIN_PROFILE_DELETE_ATTEMPTS",
    "email_timeout": "ORGADMIN_EMAIL_TIMEOUT",
}

_REQUIRED = (
    "supabase_url",
    "service_role_key",
    "resend_api_key",
    "management_mailbox",
    "decision_secret",
)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the service's SQLite state."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_ROOT / "data" / "orgadmin.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_ROOT / "config" / "orgadmin.yaml").resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by every handler."""

    supabase_url: str
    service_role_key: str
    resend_api_key: str
    management_mailbox: str
    decision_secret: str
    resend_api_url: str = "https://api.resend.com"
    sender: str = "TEDx System <onboarding@resend.dev>"
    public_base_url: str = "http://localhost:8000"
    decision_ttl_hours: int = 168
    database_path: Path = resolve_database_path(None)
    profile_delete_attempts: int = 2
    email_timeout: float = 10.0

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from raw mapping data."""
        missing = [key for key in _REQUIRED if not str(data.get(key) or "").strip()]
        if missing:
            raise ValueError(f"Missing required configuration values: {', '.join(sorted(missing))}")

        attempts = int(data.get("profile_delete_attempts", 2))
        if attempts < 1:
            raise ValueError("profile_delete_attempts must be at least 1")
        ttl_hours = int(data.get("decision_ttl_hours", 168))
        if ttl_hours < 1:
            raise ValueError("decision_ttl_hours must be at least 1")

        raw_db_path = data.get("database_path")
        return Settings(
            supabase_url=str(data["supabase_url"]).strip().rstrip("/"),
            service_role_key=str(data["service_role_key"]).strip(),
            resend_api_key=str(data["resend_api_key"]).strip(),
            management_mailbox=str(data["management_mailbox"]).strip(),
            decision_secret=str(data["decision_secret"]),
            resend_api_url=str(data.get("resend_api_url") or "https://api.resend.com").strip().rstrip("/"),
            sender=str(data.get("sender") or "TEDx System <onboarding@resend.dev>"),
            public_base_url=str(data.get("public_base_url") or "http://localhost:8000").strip().rstrip("/"),
            decision_ttl_hours=ttl_hours,
            database_path=resolve_database_path(str(raw_db_path) if raw_db_path else None),
            profile_delete_attempts=attempts,
            email_timeout=float(data.get("email_timeout", 10.0)),
        )


def _read_yaml(config_path: Path) -> Dict[str, object]:
    if not config_path.exists():
        return {}
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return raw


def load_settings(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from the YAML file, then overlay environment variables."""
    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("ORGADMIN_CONFIG"))

    data = _read_yaml(path)
    for key, env_name in _ENV_KEYS.items():
        value = env.get(env_name)
        if value is not None and value.strip():
            data[key] = value
    return Settings.from_dict(data)


__all__ = ["Settings", "load_settings", "resolve_config_path", "resolve_database_path"]
