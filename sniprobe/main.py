"""
SniProbe — Entry Point

Runs the fixed two-pass demo: first every connection reuses one client
context, then every connection gets a fresh one.

`python -m sniprobe` → exit 0 on completion, 1 on a fatal startup error
(credentials could not be loaded, listener could not bind).
"""

from __future__ import annotations

import os
import sys
from contextlib import ExitStack

import structlog
from dotenv import load_dotenv

from sniprobe.config import load_config
from sniprobe.credentials import CredentialProvider
from sniprobe.errors import BindError, CredentialLoadError
from sniprobe.primitives.common import new_id
from sniprobe.systems.client import SniProbingClient, TLSContextManager
from sniprobe.systems.demo import DemoOrchestrator, render_report
from sniprobe.systems.server import SniObservationServer
from sniprobe.telemetry.logging import bind_run_context, setup_logging

logger = structlog.get_logger("sniprobe.main")


def main() -> int:
    # Load .env file before any configuration is loaded
    load_dotenv()

    config_path = os.environ.get("SNIPROBE_CONFIG_PATH", "config/default.yaml")
    config = load_config(config_path)
    setup_logging(config.logging)
    bind_run_context(new_id(), config.client.sni_policy.value)
    logger.info(
        "sniprobe_starting",
        config_path=config_path,
        hostnames=config.demo.hostnames,
    )

    try:
        with ExitStack() as stack:
            credentials = stack.enter_context(CredentialProvider(config.credentials))

            contexts = TLSContextManager(
                credentials,
                policy=config.client.sni_policy,
                verify_peer=config.client.verify_peer,
            )
            # The shared context exists before the first connection, as in a
            # long-lived client
            contexts.get_or_create_context(reuse=True)

            server = stack.enter_context(
                SniObservationServer.from_config(config.server, credentials)
            )

            orchestrator = DemoOrchestrator(
                server,
                contexts,
                SniProbingClient(connect_timeout_s=config.client.connect_timeout_s),
                hostnames=config.demo.hostnames,
                prime_without_sni=config.demo.prime_without_sni,
                observation_timeout_s=config.demo.observation_timeout_s,
            )
            report = orchestrator.run(config.demo.reuse_modes)
    except (CredentialLoadError, BindError) as exc:
        logger.error("startup_failed", error_type=type(exc).__name__, error=str(exc))
        return 1

    print(render_report(report))
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
