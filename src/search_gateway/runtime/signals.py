"""Signal handling for graceful gateway shutdown."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
import logging
import signal
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from starlette.applications import Starlette


logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown_signals(
    app: Starlette,
    signals: Iterable[signal.Signals] = SHUTDOWN_SIGNALS,
) -> asyncio.Event:
    """Set ``app.state.shutdown_event`` when a shutdown signal arrives.

    Handlers installed here cover the window before the server starts.
    ``uvicorn.run`` installs its own handlers while serving, so during normal
    operation the lifespan exit is what closes the suggestion store. Only the
    first signal is recorded, in
    ``app.state.shutdown_signal``. Installing twice reuses the existing event.
    """
    existing = getattr(app.state, "shutdown_event", None)
    if isinstance(existing, asyncio.Event):
        return existing

    shutdown_event = asyncio.Event()
    app.state.shutdown_signal = None

    def _handler_for(sig: signal.Signals) -> Callable[[int, object | None], None]:
        def _on_signal(signum: int, frame: object | None) -> None:  # pragma: no cover - signal glue
            if shutdown_event.is_set():
                logger.debug("Ignoring repeated %s during shutdown", sig.name)
                return
            app.state.shutdown_signal = sig.name
            logger.info("Received %s; closing search gateway", sig.name)
            shutdown_event.set()

        return _on_signal

    installed = []
    for sig in signals:
        try:
            signal.signal(sig, _handler_for(sig))
        except ValueError:  # pragma: no cover - only the main thread may install handlers
            logger.debug("Cannot install %s handler outside the main thread", sig.name)
            continue
        installed.append(sig.name)

    logger.debug("Shutdown signal handlers installed: %s", installed)
    app.state.shutdown_event = shutdown_event
    return shutdown_event
