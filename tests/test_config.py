from __future__ import annotations

from pathlib import Path

import pytest

from orgadmin.config import Settings, load_settings, resolve_config_path, resolve_database_path


REQUIRED = {
    "supabase_url": "https://project.supabase.co/",
    "service_role_key": "service-key",
    "resend_api_key": "re_key",
    "management_mailbox": "board@example.com",
    "decision_secret": "secret",
}


def test_from_dict_applies_defaults() -> None:
    settings = Settings.from_dict(REQUIRED)

    assert settings.supabase_url == "https://project.supabase.co"
    assert settings.resend_api_url == "https://api.resend.com"
    assert settings.decision_ttl_hours == 168
    assert settings.profile_delete_attempts == 2
    assert settings.database_path == resolve_database_path(None)


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_from_dict_requires_core_values(missing: str) -> None:
    data = dict(REQUIRED)
    data[missing] = "  "

    with pytest.raises(ValueError) as excinfo:
        Settings.from_dict(data)
    assert missing in str(excinfo.value)


@pytest.mark.parametrize("key", ["profile_delete_attempts", "decision_ttl_hours"])
def test_from_dict_rejects_non_positive_counts(key: str) -> None:
    with pytest.raises(ValueError):
        Settings.from_dict({**REQUIRED, key: 0})


def test_yaml_file_is_overlaid_by_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "orgadmin.yaml"
    config_path.write_text(
        "\n".join(
            [
                "supabase_url: https://from-file.supabase.co",
                "service_role_key: file-key",
                "resend_api_key: re_file",
                "management_mailbox: file@example.com",
                "decision_secret: file-secret",
                "public_base_url: https://admin.example.com/",
                "profile_delete_attempts: 4",
            ]
        ),
        encoding="utf-8",
    )

    settings = load_settings(
        config_path,
        environ={
            "ORGADMIN_MANAGEMENT_MAILBOX": "env@example.com",
            "ORGADMIN_DECISION_TTL_HOURS": "24",
            "ORGADMIN_DB_PATH": str(tmp_path / "state.sqlite3"),
            "RESEND_API_KEY": "  ",
        },
    )

    assert settings.supabase_url == "https://from-file.supabase.co"
    assert settings.resend_api_key == "re_file"
    assert settings.management_mailbox == "env@example.com"
    assert settings.public_base_url == "https://admin.example.com"
    assert settings.decision_ttl_hours == 24
    assert settings.profile_delete_attempts == 4
    assert settings.database_path == (tmp_path / "state.sqlite3").resolve()


def test_environment_alone_is_enough(tmp_path: Path) -> None:
    settings = load_settings(
        tmp_path / "absent.yaml",
        environ={
            "SUPABASE_URL": "https://env.supabase.co",
            "SUPABASE_SERVICE_ROLE_KEY": "env-key",
            "RESEND_API_KEY": "re_env",
            "ORGADMIN_MANAGEMENT_MAILBOX": "board@example.com",
            "ORGADMIN_DECISION_SECRET": "env-secret",
        },
    )

    assert settings.service_role_key == "env-key"


def test_config_path_comes_from_environment(tmp_path: Path) -> None:
    config_path = tmp_path / "custom.yaml"
    config_path.write_text(
        "\n".join(f"{key}: {value}" for key, value in REQUIRED.items()),
        encoding="utf-8",
    )

    settings = load_settings(environ={"ORGADMIN_CONFIG": str(config_path)})

    assert settings.decision_secret == "secret"
    assert resolve_config_path(str(config_path)) == config_path.resolve()


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "broken.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_settings(config_path, environ={})
