"""Persisted record of what has been indexed and when.

The metadata file is written last in every build or update, after the index
transaction has committed. A crash in between leaves metadata describing the
previous generation; the next update sees its document count disagree with
the database and rebuilds.
"""

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path

from ailog_search.errors import MetadataCorrupt
from ailog_search.models import LogLocation

logger = logging.getLogger(__name__)

HASH_PREFIX_BYTES = 1_048_576  # First 1 MiB is hashed
MTIME_TOLERANCE = 0.001


@dataclass
class Fingerprint:
    """Cheap change detector for one source."""

    size_bytes: int
    mtime: float
    content_hash: str

    def matches(self, other: "Fingerprint") -> bool:
        """True when other describes the same content.

        Size must match; then an equal mtime is enough, otherwise the head
        hash decides (covers files that were only touched).
        """
        if self.size_bytes != other.size_bytes:
            return False
        if abs(self.mtime - other.mtime) <= MTIME_TOLERANCE:
            return True
        return self.content_hash == other.content_hash

    def to_dict(self) -> dict:
        return {"size_bytes": self.size_bytes, "mtime": self.mtime, "content_hash": self.content_hash}

    @classmethod
    def from_dict(cls, data: dict) -> "Fingerprint":
        return cls(
            size_bytes=int(data["size_bytes"]),
            mtime=float(data["mtime"]),
            content_hash=str(data["content_hash"]),
        )


def compute_fingerprint(path: Path) -> Fingerprint:
    """Fingerprint a file from its size, mtime and SHA-256 of the first 1 MiB."""
    stat = path.stat()
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        hasher.update(handle.read(HASH_PREFIX_BYTES))
    return Fingerprint(size_bytes=stat.st_size, mtime=stat.st_mtime, content_hash=hasher.hexdigest())


@dataclass
class LocationMetadata:
    """What the index holds for one source."""

    source_location: str
    tool: str
    log_type: str
    fingerprint: Fingerprint
    last_indexed_at: datetime
    doc_count: int = 0
    doc_id_range: tuple[str, str] | None = None

    def to_dict(self) -> dict:
        return {
            "source_location": self.source_location,
            "tool": self.tool,
            "log_type": self.log_type,
            "fingerprint": self.fingerprint.to_dict(),
            "last_indexed_at": self.last_indexed_at.isoformat(),
            "doc_count": self.doc_count,
            "doc_id_range": list(self.doc_id_range) if self.doc_id_range else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LocationMetadata":
        id_range = data.get("doc_id_range")
        if id_range is not None:
            first, last = id_range
            id_range = (str(first), str(last))
        doc_count = int(data["doc_count"])
        if doc_count < 0:
            raise ValueError("doc_count must be >= 0")
        return cls(
            source_location=str(data["source_location"]),
            tool=str(data["tool"]),
            log_type=str(data["log_type"]),
            fingerprint=Fingerprint.from_dict(data["fingerprint"]),
            last_indexed_at=_parse_datetime(data["last_indexed_at"]),
            doc_count=doc_count,
            doc_id_range=id_range,
        )


@dataclass
class IndexMetadata:
    """Process-wide persisted index state."""

    schema_version: str
    last_indexed: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    total_docs: int = 0
    locations: dict[str, LocationMetadata] = field(default_factory=dict)
    skipped_sources: int = 0

    def find_location(self, source_location: str) -> LocationMetadata | None:
        return self.locations.get(source_location)

    def upsert_location(self, location: LocationMetadata) -> None:
        self.locations[location.source_location] = location

    def remove_location(self, source_location: str) -> None:
        self.locations.pop(source_location, None)

    def update_total_docs(self) -> None:
        self.total_docs = sum(loc.doc_count for loc in self.locations.values())

    def to_dict(self) -> dict:
        return {
            "schema_version": self.schema_version,
            "last_indexed": self.last_indexed.isoformat(),
            "total_docs": self.total_docs,
            "skipped_sources": self.skipped_sources,
            "locations": [loc.to_dict() for _, loc in sorted(self.locations.items())],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IndexMetadata":
        locations = {}
        for item in data["locations"]:
            location = LocationMetadata.from_dict(item)
            locations[location.source_location] = location
        return cls(
            schema_version=str(data["schema_version"]),
            last_indexed=_parse_datetime(data["last_indexed"]),
            total_docs=int(data["total_docs"]),
            locations=locations,
            skipped_sources=int(data.get("skipped_sources", 0)),
        )


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def load_metadata(path: Path) -> IndexMetadata:
    """
    Load index metadata.

    Raises:
        MetadataCorrupt: the file is missing, unreadable, not valid JSON, has
            the wrong shape, or violates total_docs == sum(doc_count).
    """
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError as e:
        raise MetadataCorrupt(f"Index metadata not found: {path}") from e
    except (OSError, ValueError) as e:
        raise MetadataCorrupt(f"Cannot read index metadata {path}: {e}") from e

    try:
        metadata = IndexMetadata.from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise MetadataCorrupt(f"Malformed index metadata {path}: {e!r}") from e

    expected = sum(loc.doc_count for loc in metadata.locations.values())
    if metadata.total_docs != expected:
        raise MetadataCorrupt(
            f"Inconsistent index metadata {path}: total_docs={metadata.total_docs}, "
            f"sum of locations={expected}"
        )
    return metadata


def save_metadata(metadata: IndexMetadata, path: Path) -> None:
    """Write metadata atomically (temp file in the same directory + rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".metadata-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(metadata.to_dict(), handle, indent=2)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except Exception:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise
    logger.debug("Saved index metadata to %s (%d docs)", path, metadata.total_docs)


def index_age(metadata: IndexMetadata, now: datetime | None = None) -> timedelta:
    """Time elapsed since the last successful build or update."""
    now = now or datetime.now(timezone.utc)
    return now - metadata.last_indexed


def format_age(age: timedelta) -> str:
    minutes = max(0, int(age.total_seconds() // 60))
    if minutes < 60:
        return f"{minutes}m ago"
    if minutes < 1440:
        return f"{minutes // 60}h ago"
    return f"{minutes // 1440}d ago"


@dataclass
class ChangeSet:
    """Discovered sources classified against stored metadata."""

    new: list[LogLocation] = field(default_factory=list)
    changed: list[LogLocation] = field(default_factory=list)
    unchanged: list[LogLocation] = field(default_factory=list)
    touched: list[LogLocation] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def to_reindex(self) -> list[LogLocation]:
        return self.new + self.changed

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.changed or self.removed)


def classify_sources(
    metadata: IndexMetadata,
    discovered: list[LogLocation],
    fingerprints: dict[str, Fingerprint],
) -> ChangeSet:
    """
    Classify discovered sources as new, changed, unchanged or removed.

    ``fingerprints`` maps source location to its current fingerprint; a
    discovered location without a fingerprint could not be read and is
    treated as absent. Unchanged sources whose mtime moved are also listed
    in ``touched`` so their stored fingerprint can be refreshed.
    """
    changes = ChangeSet()
    present: set[str] = set()

    for location in discovered:
        key = str(location.path)
        current = fingerprints.get(key)
        if current is None:
            continue
        present.add(key)

        stored = metadata.find_location(key)
        if stored is None:
            changes.new.append(location)
        elif not stored.fingerprint.matches(current):
            changes.changed.append(location)
        else:
            changes.unchanged.append(location)
            if abs(stored.fingerprint.mtime - current.mtime) > MTIME_TOLERANCE:
                changes.touched.append(location)

    changes.removed = sorted(key for key in metadata.locations if key not in present)
    return changes
