"""
Unit tests for configuration loading.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from sniprobe.config import DemoConfig, SniProbeConfig, load_config
from sniprobe.primitives.probe import SniPolicy


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "SNIPROBE_KEYSTORE_PATH",
        "SNIPROBE_KEYSTORE_PASSWORD",
        "SNIPROBE_SNI_POLICY",
        "SNIPROBE_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults_match_the_demo_script(self):
        config = SniProbeConfig()
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 0
        assert config.client.sni_policy == SniPolicy.PER_CONNECTION
        assert config.demo.hostnames == ["alpha.example", "beta.example", None]
        assert config.demo.reuse_modes == [True, False]

    def test_missing_file_yields_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "nope.yaml")
        assert config.credentials.password == "storepass"

    def test_shipped_default_yaml_loads(self):
        path = Path(__file__).resolve().parents[2] / "config" / "default.yaml"
        config = load_config(path)
        assert config.demo.hostnames[-1] is None
        assert config.server.observe_sni is True


class TestYamlAndEnvironment:
    def test_yaml_values_apply(self, tmp_path: Path):
        path = tmp_path / "sniprobe.yaml"
        path.write_text(
            "client:\n"
            "  sni_policy: sticky_first\n"
            "demo:\n"
            "  hostnames: [one.example, null]\n"
            "  prime_without_sni: true\n"
        )
        config = load_config(path)
        assert config.client.sni_policy == SniPolicy.STICKY_FIRST
        assert config.demo.hostnames == ["one.example", None]
        assert config.demo.prime_without_sni is True

    def test_environment_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        path = tmp_path / "sniprobe.yaml"
        path.write_text("credentials:\n  password: from-yaml\n")
        monkeypatch.setenv("SNIPROBE_KEYSTORE_PASSWORD", "from-env")
        monkeypatch.setenv("SNIPROBE_SNI_POLICY", "STICKY_FIRST")

        config = load_config(path)
        assert config.credentials.password == "from-env"
        assert config.client.sni_policy == SniPolicy.STICKY_FIRST

    def test_explicit_overrides_win(self, tmp_path: Path):
        config = load_config(None, overrides={"server": {"observe_sni": False}})
        assert config.server.observe_sni is False


class TestValidation:
    def test_rejects_ip_literal_hostnames(self):
        with pytest.raises(ValidationError):
            DemoConfig(hostnames=["127.0.0.1"])

    def test_rejects_unknown_policy(self):
        with pytest.raises(ValidationError):
            load_config(None, overrides={"client": {"sni_policy": "sometimes"}})
