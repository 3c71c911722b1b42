"""
tests/test_shutdown.py -- Startup fail-fast and the graceful shutdown watchdog.

Covers:
  - main() exits 1 before building a server when configuration is missing
  - main() exits 1 before building a server when the database is unreachable
  - begin_shutdown() stops the server and force-exits after the grace period
  - the watchdog is armed once and can be cancelled
  - signals and error hooks share the same shutdown path
  - a signal uvicorn re-raises after serve() still yields an exit code
"""

from __future__ import annotations

import signal
import sys
import threading
import time

import pytest
import uvicorn

import main as entrypoint
from core.config import get_settings
from core.shutdown import GracefulServer, run_server


@pytest.fixture
def isolated_env(monkeypatch, tmp_path):
    """No .env file and no required variables; settings cache reset around the test."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("AUTH_SECRET", raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture
def servers_built(monkeypatch):
    built: list = []

    class RecordingServer:
        def __init__(self, config, *args, **kwargs):
            built.append(config)

    monkeypatch.setattr(entrypoint, "GracefulServer", RecordingServer)
    monkeypatch.setattr(entrypoint, "run_server", lambda server: 0)
    return built


def test_missing_required_env_exits_before_binding(isolated_env, servers_built):
    assert entrypoint.main([]) == 1
    assert servers_built == []


def test_short_secret_exits_before_binding(isolated_env, servers_built):
    isolated_env.setenv("DATABASE_URL", "sqlite://")
    isolated_env.setenv("AUTH_SECRET", "short")
    assert entrypoint.main([]) == 1
    assert servers_built == []


def test_unreachable_database_exits_before_binding(isolated_env, servers_built):
    isolated_env.setenv("DATABASE_URL", "nosuchdriver://user@host/db")
    isolated_env.setenv("AUTH_SECRET", "a" * 32)
    assert entrypoint.main([]) == 1
    assert servers_built == []


def test_valid_env_builds_server_on_requested_port(isolated_env, servers_built):
    isolated_env.setenv("DATABASE_URL", "sqlite://")
    isolated_env.setenv("AUTH_SECRET", "a" * 32)
    assert entrypoint.main(["--port", "8123"]) == 0
    assert len(servers_built) == 1
    assert servers_built[0].port == 8123
    assert servers_built[0].timeout_graceful_shutdown == 10


# ---------------------------------------------------------------------------
# GracefulServer
# ---------------------------------------------------------------------------


def _server(grace: float, codes: list, fired: threading.Event) -> GracefulServer:
    def exit_func(code: int) -> None:
        codes.append(code)
        fired.set()

    config = uvicorn.Config(app=lambda scope, receive, send: None)
    return GracefulServer(config, grace_seconds=grace, exit_func=exit_func)


def test_watchdog_force_exits_after_grace_period():
    codes: list = []
    fired = threading.Event()
    server = _server(0.05, codes, fired)

    server.begin_shutdown("SIGTERM")
    assert server.should_exit is True
    assert fired.wait(2)
    assert codes == [1]


def test_watchdog_armed_once():
    server = _server(5, [], threading.Event())
    server.begin_shutdown("SIGTERM")
    first = server._watchdog
    server.begin_shutdown("SIGINT")
    assert server._watchdog is first
    server.cancel_watchdog()


def test_cancelled_watchdog_does_not_fire():
    codes: list = []
    fired = threading.Event()
    server = _server(0.05, codes, fired)
    server.begin_shutdown("SIGTERM")
    server.cancel_watchdog()
    time.sleep(0.2)
    assert codes == []


def test_signal_uses_shutdown_path():
    server = _server(5, [], threading.Event())
    server.handle_exit(signal.SIGTERM, None)
    assert server.should_exit is True
    assert server.failed is False
    assert server._watchdog is not None
    server.cancel_watchdog()


def test_uncaught_exception_marks_failure():
    server = _server(5, [], threading.Event())
    try:
        raise ValueError("boom")
    except ValueError as exc:
        server._on_uncaught(type(exc), exc, exc.__traceback__)
    assert server.should_exit is True
    assert server.failed is True
    server.cancel_watchdog()


def test_loop_error_marks_failure():
    server = _server(5, [], threading.Event())
    server._on_loop_error(None, {"message": "Task exception was never retrieved", "exception": RuntimeError("x")})
    assert server.failed is True
    server.cancel_watchdog()


# ---------------------------------------------------------------------------
# run_server
# ---------------------------------------------------------------------------


def _serve_then_reraise(server: GracefulServer, sig: signal.Signals, failed: bool = False):
    """Stand-in for uvicorn's serve(): shut down, then re-raise the signal."""

    async def serve(sockets=None) -> None:
        server.handle_exit(sig, None)
        if failed:
            server.begin_shutdown("UNCAUGHT_EXCEPTION", failed=True)
        raise KeyboardInterrupt(sig.name)

    return serve


@pytest.mark.parametrize("sig", [signal.SIGINT, signal.SIGTERM])
def test_reraised_signal_exits_cleanly(monkeypatch, sig):
    server = _server(5, [], threading.Event())
    monkeypatch.setattr(server, "serve", _serve_then_reraise(server, sig))
    hooks = (sys.excepthook, threading.excepthook)

    assert run_server(server) == 0
    assert server._watchdog.finished.is_set()
    assert (sys.excepthook, threading.excepthook) == hooks


def test_reraised_signal_after_failure_exits_1(monkeypatch):
    server = _server(5, [], threading.Event())
    monkeypatch.setattr(server, "serve", _serve_then_reraise(server, signal.SIGTERM, failed=True))
    assert run_server(server) == 1


def test_sigterm_handler_restored(monkeypatch):
    server = _server(5, [], threading.Event())
    monkeypatch.setattr(server, "serve", _serve_then_reraise(server, signal.SIGTERM))
    before = signal.getsignal(signal.SIGTERM)
    run_server(server)
    assert signal.getsignal(signal.SIGTERM) == before
