"""Index builder: full builds and incremental updates of the search index."""

import logging
import sqlite3
import time
from collections.abc import Callable, Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from filelock import FileLock, Timeout

from ailog_search.discovery import scan
from ailog_search.errors import IndexLocked, MetadataCorrupt
from ailog_search.models import DiscoveryFindings, LogLocation, format_bytes
from ailog_search.parsers import DEFAULT_MAX_LINES, select_parser
from ailog_search.search.database import Database
from ailog_search.search.metadata import (
    Fingerprint,
    IndexMetadata,
    LocationMetadata,
    classify_sources,
    compute_fingerprint,
    load_metadata,
    save_metadata,
)
from ailog_search.search.schema import SCHEMA_VERSION, LogDocument

logger = logging.getLogger(__name__)

DB_FILENAME = "index.db"
METADATA_FILENAME = "metadata.json"
LOCK_FILENAME = "index.lock"


@dataclass
class IndexStats:
    """Outcome of a build or update."""

    total_docs: int = 0
    total_files: int = 0
    total_bytes: int = 0
    added: int = 0
    updated: int = 0
    removed: int = 0
    unchanged: int = 0
    skipped: int = 0
    index_size_bytes: int = 0
    duration_secs: float = 0.0
    full_rebuild: bool = False

    def summary(self) -> str:
        if self.full_rebuild:
            head = f"Indexed {self.total_docs} log entries from {self.total_files} files"
        else:
            head = (
                f"{self.added} added, {self.updated} updated, {self.removed} removed, "
                f"{self.unchanged} unchanged; {self.total_docs} entries in index"
            )
        tail = f" in {self.duration_secs:.1f}s (index size {format_bytes(self.index_size_bytes)})"
        if self.skipped:
            tail += f", {self.skipped} sources skipped"
        return head + tail


@dataclass
class SourceBatch:
    """Documents produced from one successfully parsed source."""

    location: LogLocation
    fingerprint: Fingerprint
    documents: list[LogDocument]

    @property
    def key(self) -> str:
        return str(self.location.path)

    def to_location_metadata(self, indexed_at: datetime) -> LocationMetadata:
        id_range = None
        if self.documents:
            id_range = (self.documents[0].doc_id, self.documents[-1].doc_id)
        return LocationMetadata(
            source_location=self.key,
            tool=self.documents[0].tool if self.documents else self.location.tool,
            log_type=self.location.log_type.value,
            fingerprint=self.fingerprint,
            last_indexed_at=indexed_at,
            doc_count=len(self.documents),
            doc_id_range=id_range,
        )


class IndexBuilder:
    """
    Maintains the search index under an index-cache directory.

    The index holds exactly one document per log entry currently present in
    the discovered sources. Every mutation is one SQLite transaction; the
    metadata file is written only after that transaction commits.

    Only one builder may write at a time: an exclusive file lock is taken on
    ``<index_dir>/index.lock`` without waiting, and contention raises
    IndexLocked.
    """

    def __init__(
        self,
        index_dir: Path,
        home_dir: Path,
        max_lines_per_source: int = DEFAULT_MAX_LINES,
        workers: int = 1,
        discover: Callable[[Path], DiscoveryFindings] = scan,
    ):
        """
        Initialize the builder.

        Args:
            index_dir: Index-cache root holding the database and metadata
            home_dir: Base directory passed to discovery
            max_lines_per_source: Hard cap on lines consumed from one source
            workers: Threads used to parse sources; inserts stay single-writer
            discover: Discovery function, ``scan`` by default
        """
        self.index_dir = index_dir
        self.home_dir = home_dir
        self.max_lines_per_source = max_lines_per_source
        self.workers = max(1, workers)
        self._discover = discover

    @property
    def db_path(self) -> Path:
        return self.index_dir / DB_FILENAME

    @property
    def metadata_path(self) -> Path:
        return self.index_dir / METADATA_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.index_dir / LOCK_FILENAME

    def index_exists(self) -> bool:
        """True if a committed index database is present.

        A database file without a recorded schema (a first build that never
        committed) or one SQLite cannot read counts as missing.
        """
        db = Database(self.db_path)
        if not db.exists():
            return False
        try:
            return db.schema_version() is not None
        except sqlite3.DatabaseError as e:
            logger.debug("Index database %s unreadable: %s", self.db_path, e)
            return False
        finally:
            db.close()

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Hold the writer lock for the duration of the block."""
        self.index_dir.mkdir(parents=True, exist_ok=True)
        lock = FileLock(str(self.lock_path), timeout=0)
        try:
            lock.acquire()
        except Timeout as e:
            raise IndexLocked(f"Index at {self.index_dir} is being updated by another process") from e
        try:
            yield
        finally:
            lock.release()

    # Public operations

    def build_initial_index(self) -> IndexStats:
        """
        Rebuild the whole index from scratch.

        Raises:
            IndexLocked: another builder holds the index.
            OSError: discovery or the index commit failed; the previous index
                is left untouched.
        """
        with self._exclusive():
            return self._build()

    def update_index(self) -> IndexStats:
        """
        Reindex only new, changed and removed sources.

        Degrades to a full rebuild when there is no usable index: missing
        database, unreadable metadata, a schema version mismatch, or a
        database whose document count disagrees with the metadata.
        """
        with self._exclusive():
            metadata, orphans, reason = self._load_for_update()
            if metadata is None:
                logger.info("%s; performing full rebuild", reason)
                return self._build()
            return self._update(metadata, orphans)

    # Internals

    def _build(self) -> IndexStats:
        start = time.monotonic()
        logger.info("Discovering logs under %s", self.home_dir)
        findings = self._discover(self.home_dir)
        logger.info(
            "Found %d log files from %d tools (%s)",
            findings.total_files,
            len(findings.tools_found),
            format_bytes(findings.total_size_bytes),
        )

        batches, skipped = self._process(findings.locations, {})

        db = self._open_database_for_rebuild()
        try:
            with db.writer() as writer:
                writer.reset(SCHEMA_VERSION)
                for batch in batches:
                    writer.add_documents(batch.documents)
            index_size = db.size_bytes()
        finally:
            db.close()

        now = datetime.now(timezone.utc)
        metadata = IndexMetadata(schema_version=SCHEMA_VERSION, last_indexed=now, skipped_sources=skipped)
        for batch in batches:
            metadata.upsert_location(batch.to_location_metadata(now))
        metadata.update_total_docs()
        save_metadata(metadata, self.metadata_path)

        stats = IndexStats(
            total_docs=metadata.total_docs,
            total_files=len(batches),
            total_bytes=sum(batch.fingerprint.size_bytes for batch in batches),
            added=len(batches),
            skipped=skipped,
            index_size_bytes=index_size,
            duration_secs=time.monotonic() - start,
            full_rebuild=True,
        )
        logger.info(stats.summary())
        return stats

    def _update(self, metadata: IndexMetadata, orphans: set[str]) -> IndexStats:
        start = time.monotonic()
        logger.debug("Checking %s for log changes", self.home_dir)
        findings = self._discover(self.home_dir)

        fingerprints: dict[str, Fingerprint] = {}
        for location in findings.locations:
            try:
                fingerprints[str(location.path)] = compute_fingerprint(location.path)
            except OSError as e:
                logger.debug("Cannot fingerprint %s: %s", location.path, e)

        changes = classify_sources(metadata, findings.locations, fingerprints)
        batches, skipped = self._process(changes.to_reindex, fingerprints)
        parsed = {batch.key for batch in batches}
        # Changed sources that no longer parse lose their old documents
        failed = [str(loc.path) for loc in changes.changed if str(loc.path) not in parsed]
        discovered = {str(loc.path) for loc in findings.locations}
        # Sources left in the database by an interrupted run
        orphaned = sorted(orphans - discovered)
        dropped = changes.removed + failed + orphaned

        db = Database(self.db_path)
        try:
            if batches or dropped:
                with db.writer() as writer:
                    for key in dropped:
                        writer.delete_source(key)
                    for batch in batches:
                        writer.delete_source(batch.key)
                        writer.add_documents(batch.documents)
            index_size = db.size_bytes()
        finally:
            db.close()

        now = datetime.now(timezone.utc)
        for key in dropped:
            metadata.remove_location(key)
        for batch in batches:
            metadata.upsert_location(batch.to_location_metadata(now))
        for location in changes.touched:
            key = str(location.path)
            metadata.locations[key].fingerprint = fingerprints[key]
        metadata.last_indexed = now
        metadata.skipped_sources = skipped
        metadata.update_total_docs()
        save_metadata(metadata, self.metadata_path)

        new_keys = {str(loc.path) for loc in changes.new}
        stats = IndexStats(
            total_docs=metadata.total_docs,
            total_files=len(metadata.locations),
            total_bytes=sum(loc.fingerprint.size_bytes for loc in metadata.locations.values()),
            added=sum(1 for batch in batches if batch.key in new_keys),
            updated=sum(1 for batch in batches if batch.key not in new_keys),
            removed=len(dropped),
            unchanged=len(changes.unchanged),
            skipped=skipped,
            index_size_bytes=index_size,
            duration_secs=time.monotonic() - start,
        )
        if batches or dropped:
            logger.info(stats.summary())
        else:
            logger.info("No changes detected (%d entries in index)", stats.total_docs)
        return stats

    def _load_for_update(self) -> tuple[IndexMetadata | None, set[str], str]:
        """Check whether an incremental update is possible.

        Returns (metadata, orphans, "") on success, where orphans are sources
        with documents in the database but no metadata entry, otherwise
        (None, set(), reason).
        """
        if not self.db_path.exists():
            return None, set(), "No search index found"
        try:
            metadata = load_metadata(self.metadata_path)
        except MetadataCorrupt as e:
            logger.warning("Index metadata unusable: %s", e)
            return None, set(), "Index metadata unusable"
        if metadata.schema_version != SCHEMA_VERSION:
            return None, set(), f"Index schema {metadata.schema_version} differs from {SCHEMA_VERSION}"

        db = Database(self.db_path)
        try:
            db_version = db.schema_version()
            if db_version != SCHEMA_VERSION:
                return None, set(), f"Index database schema {db_version} differs from {SCHEMA_VERSION}"
            orphans = db.list_sources() - set(metadata.locations)
            known_docs = db.count_documents() - sum(db.count_for_source(key) for key in orphans)
        except sqlite3.DatabaseError as e:
            logger.warning("Index database unreadable: %s", e)
            return None, set(), "Index database unreadable"
        finally:
            db.close()

        # Documents missing for sources the metadata claims are indexed
        if known_docs != metadata.total_docs:
            return None, set(), (
                f"Index holds {known_docs} documents for known sources "
                f"but metadata records {metadata.total_docs}"
            )
        return metadata, orphans, ""

    def _open_database_for_rebuild(self) -> Database:
        """Open the database, discarding it first if SQLite cannot read it."""
        db = Database(self.db_path)
        if not db.exists():
            return db
        try:
            db.schema_version()
        except sqlite3.DatabaseError as e:
            logger.warning("Discarding unreadable index database %s: %s", self.db_path, e)
            db.close()
            for suffix in ("", "-wal", "-shm"):
                Path(f"{self.db_path}{suffix}").unlink(missing_ok=True)
            db = Database(self.db_path)
        return db

    def _process(
        self,
        locations: list[LogLocation],
        fingerprints: dict[str, Fingerprint],
    ) -> tuple[list[SourceBatch], int]:
        """Parse sources into document batches, in input order.

        Returns the batches and the number of sources skipped.
        """
        def work(location: LogLocation) -> SourceBatch | None:
            return self._parse_source(location, fingerprints.get(str(location.path)))

        if self.workers > 1 and len(locations) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as executor:
                results = list(executor.map(work, locations))
        else:
            results = [work(location) for location in locations]

        batches = [batch for batch in results if batch is not None]
        skipped = len(results) - len(batches)
        if skipped:
            logger.warning("Skipped %d of %d sources that could not be parsed", skipped, len(results))
        return batches, skipped

    def _parse_source(self, location: LogLocation, fingerprint: Fingerprint | None) -> SourceBatch | None:
        """Parse one source; failures are logged and yield None."""
        try:
            if fingerprint is None:
                fingerprint = compute_fingerprint(location.path)
            try:
                # Parser choice depends on the path below the home directory only
                hint = location.path.relative_to(self.home_dir)
            except ValueError:
                hint = location.path
            parser = select_parser(hint)
            parsed = parser.parse(location.path, self.max_lines_per_source)
        except Exception as e:
            logger.warning("Skipping %s: %s", location.path, e)
            return None

        if parsed.truncated:
            logger.warning(
                "%s exceeds %d lines; only the first %d were indexed",
                location.path,
                self.max_lines_per_source,
                self.max_lines_per_source,
            )

        tool = location.tool if location.tool != "unknown" else parsed.tool
        documents = [
            LogDocument.from_log_entry(entry, seq, tool, location.log_type.value, location.path)
            for seq, entry in enumerate(parsed.entries)
        ]
        logger.debug("Parsed %s: %d entries", location.path, len(documents))
        return SourceBatch(location=location, fingerprint=fingerprint, documents=documents)
