"""Tests for traefik_proxmox_provider.cli."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from traefik_proxmox_provider.cli import _build_settings, main

_ENV_VARS = (
    "PROXMOX_POLL_INTERVAL",
    "PROXMOX_API_ENDPOINT",
    "PROXMOX_API_TOKEN_ID",
    "PROXMOX_API_TOKEN",
    "PROXMOX_API_VALIDATE_SSL",
    "PROXMOX_API_LOGGING",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestBuildSettings:
    def test_flags_override(self):
        s = _build_settings("https://pve", "id", "tok", True, "1m", True)
        assert s.api_endpoint == "https://pve"
        assert s.api_validate_ssl is False
        assert s.poll_interval == "1m"
        assert s.api_logging == "debug"

    def test_empty_flags_keep_env(self, monkeypatch):
        monkeypatch.setenv("PROXMOX_API_ENDPOINT", "https://env")
        s = _build_settings("", "", "", False, "", False)
        assert s.api_endpoint == "https://env"
        assert s.poll_interval == "30s"
        assert s.api_validate_ssl is True


class TestCommands:
    def test_missing_settings_exit_1(self):
        result = CliRunner().invoke(main, ["generate"])
        assert result.exit_code == 1
        assert "API endpoint must be set" in result.output

    def test_generate_prints_payload(self):
        provider = MagicMock()
        provider.update_configuration.side_effect = lambda emit: emit(
            {"http": {"routers": {"web-100": {"rule": "Host(`web`)"}}}}
        )
        with patch("traefik_proxmox_provider.cli.Provider", return_value=provider):
            result = CliRunner().invoke(
                main,
                ["generate", "--api-endpoint", "https://pve", "--api-token-id", "id",
                 "--api-token", "tok", "--format", "yaml"],
            )

        assert result.exit_code == 0
        assert "Host(`web`)" in result.output
        provider.client.close.assert_called_once()

    def test_generate_writes_file(self, tmp_path):
        out = tmp_path / "proxmox.json"
        provider = MagicMock()
        provider.update_configuration.side_effect = lambda emit: emit({"tcp": {"routers": {}}})
        with patch("traefik_proxmox_provider.cli.Provider", return_value=provider):
            result = CliRunner().invoke(
                main,
                ["generate", "--api-endpoint", "https://pve", "--api-token-id", "id",
                 "--api-token", "tok", "-o", str(out)],
            )

        assert result.exit_code == 0
        assert '"routers": {}' in out.read_text()


class TestWatch:
    _ARGS = ["--api-endpoint", "https://pve", "--api-token-id", "id", "--api-token", "tok"]

    def _invoke(self, output):
        provider = MagicMock()
        provider.provide.side_effect = lambda emit: emit({"http": {"routers": {}}})
        with patch("traefik_proxmox_provider.cli.Provider", return_value=provider), patch(
            "traefik_proxmox_provider.cli.threading.Event"
        ) as mock_event:
            mock_event.return_value.wait.side_effect = KeyboardInterrupt
            result = CliRunner().invoke(main, ["watch", *self._ARGS, "-o", str(output)])
        return result, provider

    def test_json_output_is_refused(self, tmp_path):
        out = tmp_path / "proxmox.json"
        with patch("traefik_proxmox_provider.cli.Provider") as mock_provider:
            result = CliRunner().invoke(main, ["watch", *self._ARGS, "-o", str(out)])

        assert result.exit_code == 1
        assert "cannot load proxmox.json" in result.output
        mock_provider.assert_not_called()
        assert not out.exists()

    def test_yml_output_is_yaml(self, tmp_path):
        out = tmp_path / "proxmox.yml"
        result, provider = self._invoke(out)

        assert result.exit_code == 0
        assert out.read_text() == "http:\n  routers: {}\n"
        provider.close.assert_called_once()

    def test_unknown_suffix_falls_back_to_yaml(self, tmp_path):
        out = tmp_path / "proxmox.conf"
        result, _ = self._invoke(out)

        assert result.exit_code == 0
        assert out.read_text().startswith("http:\n")
