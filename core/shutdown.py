"""
core/shutdown.py -- Graceful shutdown for the uvicorn server.

GracefulServer extends uvicorn.Server with three things:

  1. Every shutdown trigger (SIGINT, SIGTERM, an uncaught exception, an
     unhandled error in an asyncio task) goes through begin_shutdown(), so
     they all follow the same path: stop accepting connections, let in-flight
     requests finish, run the app lifespan shutdown (which closes the
     database), exit.
  2. A watchdog timer armed on the first trigger force-exits the process
     with status 1 if shutdown has not completed within grace_seconds.
  3. failed records whether the shutdown was caused by an error, so the
     entry point can exit non-zero.

uvicorn itself owns the listening socket and the signal handlers; its
timeout_graceful_shutdown should be set to the same grace period (see
main.py) so in-flight tasks are cancelled before the watchdog fires.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import threading
from typing import Callable

import uvicorn

logger = logging.getLogger("gatekeeper.shutdown")

SHUTDOWN_GRACE_SECONDS = 10


class GracefulServer(uvicorn.Server):
    def __init__(
        self,
        config: uvicorn.Config,
        grace_seconds: float = SHUTDOWN_GRACE_SECONDS,
        exit_func: Callable[[int], None] = os._exit,
    ) -> None:
        super().__init__(config)
        self.grace_seconds = grace_seconds
        self.failed = False
        self._exit_func = exit_func
        self._watchdog: threading.Timer | None = None

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def handle_exit(self, sig: int, frame) -> None:
        # uvicorn escalates a second SIGINT to force_exit by looking at
        # should_exit, so let it see the flag as it was before this signal.
        super().handle_exit(sig, frame)
        self.begin_shutdown(signal.Signals(sig).name)

    def begin_shutdown(self, reason: str, failed: bool = False) -> None:
        """Stop the server and arm the force-exit watchdog (once)."""
        if failed:
            self.failed = True
        if self._watchdog is None:
            logger.warning("%s received, shutting down gracefully", reason)
            self._watchdog = threading.Timer(self.grace_seconds, self._force_exit)
            self._watchdog.daemon = True
            self._watchdog.start()
        self.should_exit = True

    def _force_exit(self) -> None:
        logger.error("Forced shutdown: still running %ss after shutdown began", self.grace_seconds)
        self._exit_func(1)

    def cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()

    # ------------------------------------------------------------------
    # Error hooks
    # ------------------------------------------------------------------

    def install_error_hooks(self, loop: asyncio.AbstractEventLoop) -> None:
        loop.set_exception_handler(self._on_loop_error)
        sys.excepthook = self._on_uncaught
        threading.excepthook = self._on_thread_error

    def _on_loop_error(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        logger.error(
            "Unhandled error in event loop: %s",
            context.get("message", "unknown"),
            exc_info=context.get("exception"),
        )
        self.begin_shutdown("UNHANDLED_REJECTION", failed=True)

    def _on_uncaught(self, exc_type, exc, tb) -> None:
        logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))
        self.begin_shutdown("UNCAUGHT_EXCEPTION", failed=True)

    def _on_thread_error(self, args: threading.ExceptHookArgs) -> None:
        self._on_uncaught(args.exc_type, args.exc_value, args.exc_traceback)


def _interrupt(signum: int, frame) -> None:
    raise KeyboardInterrupt(signal.Signals(signum).name)


def run_server(server: GracefulServer) -> int:
    """Serve until shutdown and return the process exit code.

    uvicorn restores the previous signal handlers when serve() returns and
    re-raises the signal it captured. SIGINT already maps to
    KeyboardInterrupt and SIGTERM is pointed at _interrupt for the duration,
    so a signalled shutdown ends here instead of killing the process.
    """

    async def _serve() -> None:
        server.install_error_hooks(asyncio.get_running_loop())
        await server.serve()

    hooks = (sys.excepthook, threading.excepthook)
    previous_sigterm = signal.signal(signal.SIGTERM, _interrupt)
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt as exc:
        logger.debug("%s re-raised after shutdown", str(exc) or "SIGINT")
    finally:
        signal.signal(signal.SIGTERM, previous_sigterm)
        sys.excepthook, threading.excepthook = hooks
        server.cancel_watchdog()
    if server.failed:
        return 1
    logger.info("All connections closed. Exiting process.")
    return 0
