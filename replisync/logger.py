"""Logging setup and event reporting for replication runs."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from replisync.output.console import Console as ReplisyncConsole
from replisync.sync.events import Subscription
from replisync.sync.state import ReplicationState

LOGGER_NAME = "replisync"


def configure_logging(
    level: str = "INFO",
    *,
    verbose: bool = False,
    log_file: Optional[str] = None,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Route the replisync logger through Rich, plus an optional log file.

    Args:
        level: Log level name.
        verbose: Force DEBUG level.
        log_file: Optional path of a plain-text log file.
        console: Rich console to log to.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(console=console or Console(stderr=True), show_path=False, rich_tracebacks=True)
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


class ReplicationReporter:
    """Mirror one replication's event streams onto the console and count them."""

    def __init__(self, name: str, state: ReplicationState, console: ReplisyncConsole):
        """
        Initialize reporter.

        Args:
            name: Replication name used in output.
            state: Replication to observe.
            console: Output console.
        """
        self.name = name
        self.state = state
        self.console = console
        self.counts = {"sent": 0, "received": 0, "errors": 0}
        self._active = state.active.value
        self._key_field = getattr(state.collection, "primary_key", "id")
        self._subscriptions: list[Subscription] = [
            state.sent.subscribe(self._on_sent),
            state.received.subscribe(self._on_received),
            state.errors.subscribe(self._on_error),
            state.active.subscribe(self._on_active),
        ]

    def _on_sent(self, document: dict) -> None:
        self.counts["sent"] += 1
        self.console.print_document(self.name, "sent", document, self._key_field)

    def _on_received(self, document: dict) -> None:
        self.counts["received"] += 1
        self.console.print_document(self.name, "received", document, self._key_field)

    def _on_error(self, error: Exception) -> None:
        self.counts["errors"] += 1
        self.console.print_cycle_errors(self.name, error)

    def _on_active(self, active: bool) -> None:
        # subscribe replays the current value
        if active == self._active:
            return
        self._active = active
        self.console.print_active(self.name, active)

    def close(self) -> None:
        """Stop observing."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
