"""Background sync manager for automatic index updates.

Runs a daemon thread that periodically calls builder.update_index() to keep
the search index in step with the log files on disk while the MCP server runs.
"""

import logging
import threading

from ailog_search.errors import IndexLocked
from ailog_search.search.builder import IndexBuilder

logger = logging.getLogger(__name__)


class SyncManager:
    """Manages periodic background updates of the search index.

    The sync thread is a daemon, so it automatically terminates when the
    main process exits.
    """

    def __init__(self, builder: IndexBuilder, interval: int):
        """Initialize the sync manager.

        Args:
            builder: The index builder to run updates with.
            interval: Sync interval in seconds. Must be > 0.
        """
        if interval <= 0:
            raise ValueError(f"Sync interval must be positive, got {interval}")

        self._builder = builder
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background sync thread."""
        if self.is_running:
            logger.warning("Sync thread already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sync_loop,
            name="ailog-sync",
            daemon=True,
        )
        self._thread.start()
        logger.info("Sync manager started (interval: %ds)", self._interval)

    def stop(self) -> None:
        """Stop the background sync thread.

        Blocks until the thread terminates (up to one interval).
        """
        if not self.is_running:
            return

        self._stop_event.set()
        self._thread.join(timeout=self._interval + 1)
        if self._thread.is_alive():
            logger.warning("Sync thread did not stop cleanly")
        else:
            logger.info("Sync manager stopped")
        self._thread = None

    def sync_once(self) -> None:
        """Run one update round; a locked index skips the round."""
        try:
            stats = self._builder.update_index()
        except IndexLocked:
            logger.info("Auto-sync skipped: index is being updated elsewhere")
            return
        except Exception:
            logger.exception("Error during auto-sync")
            return

        if stats.full_rebuild or stats.added or stats.updated or stats.removed:
            logger.info(
                "Auto-sync: %d added, %d updated, %d removed",
                stats.added,
                stats.updated,
                stats.removed,
            )
        else:
            logger.debug("Auto-sync: no changes detected")

    def _sync_loop(self) -> None:
        """Main sync loop - runs in background thread."""
        logger.debug("Sync loop started")

        while not self._stop_event.is_set():
            # Sleep first, then sync (allows immediate shutdown on start)
            if self._stop_event.wait(timeout=self._interval):
                break

            self.sync_once()

        logger.debug("Sync loop stopped")
