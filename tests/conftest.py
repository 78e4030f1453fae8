"""
Shared fixtures.

One PKCS#12 key store is generated per test session; RSA key generation
is the slowest thing the suite does.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from sniprobe.credentials import generate_keystore, load_keystore
from sniprobe.primitives.probe import CredentialBundle
from sniprobe.systems.server.service import SniObservationServer

KEYSTORE_PASSWORD = "storepass"


@pytest.fixture(scope="session")
def keystore(tmp_path_factory: pytest.TempPathFactory) -> Path:
    path = tmp_path_factory.mktemp("keystore") / "keypair.p12"
    return generate_keystore(path, password=KEYSTORE_PASSWORD, hostname="example.com")


@pytest.fixture(scope="session")
def credentials(
    keystore: Path, tmp_path_factory: pytest.TempPathFactory
) -> CredentialBundle:
    return load_keystore(keystore, KEYSTORE_PASSWORD, tmp_path_factory.mktemp("pem"))


@pytest.fixture
def server(credentials: CredentialBundle) -> Iterator[SniObservationServer]:
    with SniObservationServer(
        credentials,
        handshake_timeout_s=5.0,
        accept_poll_interval_s=0.05,
    ) as srv:
        yield srv
