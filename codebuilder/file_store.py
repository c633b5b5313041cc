"""
File Store

Keeps an index of file metadata and one content blob per file in a
key-value backend, and exposes list/upsert/delete over that pair.

The index lives at a single key, so every upsert and delete performs a
read-modify-write on it. Content blobs are keyed by file id and are always
written before the index, so a reader never sees an indexed file whose
content write has not happened. Deletes remove the blob first under
last-write-wins and last under optimistic writes, so a rejected delete
leaves the file intact.
"""

import json
import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from .kv_store import KeyValueStore, StoreUnavailableError

logger = logging.getLogger(__name__)

INDEX_KEY = "files:index"
BLOB_PREFIX = "file:"

LAST_WRITE_WINS = "last-write-wins"
OPTIMISTIC = "optimistic"
CONSISTENCY_MODES = (LAST_WRITE_WINS, OPTIMISTIC)

MAX_ID_ATTEMPTS = 100
INDEX_FIELDS = ("id", "name", "language")

DEFAULT_FILE = {
    "name": "index.js",
    "language": "javascript",
    "content": "// Your code here",
}


class FileValidationError(ValueError):
    """A required field is missing or empty."""


class UnknownFileError(LookupError):
    """An update named an id the index does not contain."""


class IndexConflictError(RuntimeError):
    """The index changed between read and write."""


class IdExhaustedError(RuntimeError):
    """The id factory kept returning ids that are already indexed."""


def uuid_ids() -> str:
    return uuid.uuid4().hex


def time_ids() -> str:
    """Milliseconds since the epoch, as a string."""
    return str(int(time.time() * 1000))


ID_FACTORIES: Dict[str, Callable[[], str]] = {
    "uuid": uuid_ids,
    "time": time_ids,
}


def blob_key(file_id: str) -> str:
    return BLOB_PREFIX + file_id


def _require(value: Optional[str], field: str) -> str:
    if not isinstance(value, str) or not value:
        raise FileValidationError(f"Missing required field: {field}")
    return value


def _parse_index(raw: str) -> List[Dict[str, str]]:
    try:
        entries = json.loads(raw)
    except ValueError as e:
        raise StoreUnavailableError(f"Index record is not valid JSON: {e}") from e
    if not isinstance(entries, list):
        raise StoreUnavailableError("Index record is not a list")
    for position, entry in enumerate(entries):
        if not isinstance(entry, dict) or not all(isinstance(entry.get(f), str) for f in INDEX_FIELDS):
            raise StoreUnavailableError(
                f"Index entry {position} is malformed; expected string fields {', '.join(INDEX_FIELDS)}"
            )
    return entries


def select_active(files: List[Dict[str, str]], active_id: Optional[str] = None) -> Optional[Dict[str, str]]:
    """Pick the entry matching active_id, falling back to the first file."""
    if active_id:
        for entry in files:
            if entry["id"] == active_id:
                return entry
    return files[0] if files else None


class FileStore:
    """
    Index/blob file store over a key-value backend.

    Args:
        backend: Key-value store holding the index and the blobs
        id_factory: Zero-argument callable returning candidate ids
        consistency: 'last-write-wins' or 'optimistic'
        strict_updates: Reject upserts naming an unknown id instead of creating
        seed_default_file: Initialize a never-written index with index.js
    """

    def __init__(
        self,
        backend: KeyValueStore,
        id_factory: Callable[[], str] = uuid_ids,
        consistency: str = LAST_WRITE_WINS,
        strict_updates: bool = False,
        seed_default_file: bool = False,
    ):
        if consistency not in CONSISTENCY_MODES:
            raise ValueError(
                f"Unknown consistency mode '{consistency}'. "
                f"Use one of: {', '.join(CONSISTENCY_MODES)}"
            )
        self.backend = backend
        self.id_factory = id_factory
        self.consistency = consistency
        self.strict_updates = strict_updates
        self.seed_default_file = seed_default_file

    async def _read_index(self):
        """Return (raw index value, parsed entries)."""
        raw = await self.backend.get(INDEX_KEY)
        if raw is None:
            if self.seed_default_file:
                return await self._seed()
            return None, []
        return raw, _parse_index(raw)

    async def _seed(self):
        file_id = self.id_factory()
        entries = [{"id": file_id, "name": DEFAULT_FILE["name"], "language": DEFAULT_FILE["language"]}]
        raw = json.dumps(entries)
        await self.backend.set(blob_key(file_id), DEFAULT_FILE["content"])
        if not await self.backend.compare_and_set(INDEX_KEY, None, raw):
            # Someone else initialized the index first; use theirs
            raw = await self.backend.get(INDEX_KEY)
            if raw is None:
                raise IndexConflictError("File index was removed while being initialized; reload and retry")
            return raw, _parse_index(raw)
        logger.info(f"Seeded index with {DEFAULT_FILE['name']} ({file_id})")
        return raw, entries

    async def _write_index(self, previous: Optional[str], entries: List[Dict[str, str]]) -> None:
        raw = json.dumps(entries)
        if self.consistency == OPTIMISTIC:
            if not await self.backend.compare_and_set(INDEX_KEY, previous, raw):
                logger.warning("Index changed during write; rejecting update")
                raise IndexConflictError("File index was modified concurrently; reload and retry")
            return
        await self.backend.set(INDEX_KEY, raw)

    def _mint_id(self, entries: List[Dict[str, str]]) -> str:
        taken = {entry["id"] for entry in entries}
        for _ in range(MAX_ID_ATTEMPTS):
            file_id = self.id_factory()
            if file_id not in taken:
                return file_id
        raise IdExhaustedError(f"No unused file id after {MAX_ID_ATTEMPTS} attempts")

    async def list_files(self) -> List[Dict[str, str]]:
        """
        Return every indexed file joined with its content.

        Missing blobs read as an empty string.
        """
        _, entries = await self._read_index()
        files = []
        for entry in entries:
            content = await self.backend.get(blob_key(entry["id"]))
            files.append({
                "id": entry["id"],
                "name": entry["name"],
                "language": entry["language"],
                "content": content or "",
            })
        return files

    async def upsert(
        self,
        name: Optional[str],
        language: Optional[str],
        content: Optional[str] = None,
        file_id: Optional[str] = None,
    ) -> str:
        """
        Create or replace a file.

        Args:
            name: File name (required)
            language: Editor language (required)
            content: Full file contents; omitted means empty
            file_id: Existing id to update, or None to create

        Returns:
            The id of the written file

        Raises:
            FileValidationError: If name or language is missing
            UnknownFileError: If strict updates are on and file_id is unknown
            IndexConflictError: If optimistic mode detects a concurrent write
            IdExhaustedError: If the id factory only returns indexed ids
        """
        name = _require(name, "name")
        language = _require(language, "language")

        previous, entries = await self._read_index()

        if not file_id:
            file_id = self._mint_id(entries)
            entries.append({"id": file_id, "name": name, "language": language})
            created = True
        else:
            position = next((i for i, e in enumerate(entries) if e["id"] == file_id), None)
            if position is None:
                if self.strict_updates:
                    raise UnknownFileError(f"File not found: {file_id}")
                entries.append({"id": file_id, "name": name, "language": language})
                created = True
            else:
                entries[position] = {"id": file_id, "name": name, "language": language}
                created = False

        # Blob before index
        await self.backend.set(blob_key(file_id), content or "")
        await self._write_index(previous, entries)

        logger.info(f"{'Created' if created else 'Updated'} file {name} ({file_id})")
        return file_id

    async def delete(self, file_id: Optional[str]) -> None:
        """
        Remove a file's blob and index entry.

        Unknown ids are a no-op.

        Raises:
            FileValidationError: If file_id is missing
            IndexConflictError: If optimistic mode detects a concurrent write
        """
        file_id = _require(file_id, "id")

        # Optimistic mode drops the blob only after the index write succeeds
        blob_first = self.consistency != OPTIMISTIC
        if blob_first:
            await self.backend.delete(blob_key(file_id))

        previous, entries = await self._read_index()
        remaining = [entry for entry in entries if entry["id"] != file_id]
        if len(remaining) != len(entries):
            await self._write_index(previous, remaining)

        if not blob_first:
            await self.backend.delete(blob_key(file_id))

        if len(remaining) == len(entries):
            logger.info(f"Delete of unknown file {file_id} ignored")
            return
        logger.info(f"Deleted file {file_id}")
