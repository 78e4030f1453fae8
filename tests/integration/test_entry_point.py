"""
Integration tests for the `python -m sniprobe` entry point.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from sniprobe.main import main


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


@pytest.fixture
def env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, keystore: Path) -> pytest.MonkeyPatch:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SNIPROBE_CONFIG_PATH", str(tmp_path / "absent.yaml"))
    monkeypatch.setenv("SNIPROBE_KEYSTORE_PATH", str(keystore))
    monkeypatch.setenv("SNIPROBE_KEYSTORE_PASSWORD", "storepass")
    monkeypatch.delenv("SNIPROBE_SNI_POLICY", raising=False)
    monkeypatch.setenv("SNIPROBE_LOG_LEVEL", "WARNING")
    return monkeypatch


class TestMain:
    def test_completes_and_prints_report(self, env, capsys):
        assert main() == 0
        out = capsys.readouterr().out
        assert "**** SNI REPORT (sni_policy=per_connection) ****" in out
        assert "-- reuseContext=true --" in out
        assert "-- reuseContext=false --" in out

    def test_sticky_policy_reproduces_the_defect(self, env, capsys):
        env.setenv("SNIPROBE_SNI_POLICY", "sticky_first")
        assert main() == 0
        assert "Defect reproduced" in capsys.readouterr().out

    def test_wrong_password_is_fatal(self, env, capsys):
        env.setenv("SNIPROBE_KEYSTORE_PASSWORD", "wrong")
        assert main() == 1
        assert "SNI REPORT" not in capsys.readouterr().out
