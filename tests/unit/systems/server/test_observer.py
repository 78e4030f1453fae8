"""
Unit tests for SniObserver and ObservationLog.
"""

from __future__ import annotations

import ssl
import threading
import time
from concurrent.futures import TimeoutError as FutureTimeoutError

import pytest

from sniprobe.systems.server.observer import ObservationLog, SniObserver

_CTX = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)


class TestSniObserver:
    def test_resolves_with_presented_name(self):
        observer = SniObserver()
        observer.on_server_name(None, "alpha.example", _CTX)
        assert observer.resolved
        assert observer.sni_observed
        assert observer.result(timeout=0) == "alpha.example"

    def test_unknown_names_are_observed_too(self):
        observer = SniObserver()
        observer.on_server_name(None, "definitely-not-in-the-cert.test", _CTX)
        assert observer.result(timeout=0) == "definitely-not-in-the-cert.test"

    def test_missing_extension_waits_for_handshake(self):
        observer = SniObserver()
        observer.on_server_name(None, None, _CTX)
        assert not observer.resolved
        assert observer.invocations == 1

        observer.on_handshake_complete()
        assert observer.resolved
        assert not observer.sni_observed
        assert observer.result(timeout=0) is None

    def test_resolves_exactly_once(self):
        observer = SniObserver()
        observer.on_server_name(None, "alpha.example", _CTX)
        observer.on_server_name(None, "beta.example", _CTX)
        observer.on_handshake_complete()
        assert observer.result(timeout=0) == "alpha.example"
        assert observer.invocations == 2

    def test_unresolved_result_times_out(self):
        with pytest.raises(FutureTimeoutError):
            SniObserver().result(timeout=0.01)


class TestObservationLog:
    def test_indices_follow_append_order(self):
        log = ObservationLog()
        first = log.append(observed_sni="alpha.example", sni_observed=True)
        second = log.append(peer="127.0.0.1:5555")

        assert (first.index, second.index) == (0, 1)
        assert len(log) == 2
        assert log[1].peer == "127.0.0.1:5555"
        assert [r.index for r in log] == [0, 1]

    def test_snapshot_is_a_copy(self):
        log = ObservationLog()
        log.append()
        snap = log.snapshot()
        log.append()
        assert len(snap) == 1

    def test_wait_for_existing_record_returns_immediately(self):
        log = ObservationLog()
        log.append(observed_sni="alpha.example")
        assert log.wait_for(0, timeout=0).observed_sni == "alpha.example"

    def test_wait_for_times_out_with_none(self):
        assert ObservationLog().wait_for(0, timeout=0.01) is None

    def test_wait_for_wakes_on_append_from_another_thread(self):
        log = ObservationLog()

        def writer() -> None:
            time.sleep(0.05)
            log.append(observed_sni="beta.example")

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            record = log.wait_for(0, timeout=5.0)
        finally:
            thread.join()
        assert record is not None
        assert record.observed_sni == "beta.example"
