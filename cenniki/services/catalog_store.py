"""
File storage for producer catalogs.

One JSON document per producer, stored as ``<data_dir>/<slug>.json`` and
always replaced wholesale. Writes go to a temp file in the same directory
and are renamed over the target, so a crash never leaves a truncated
catalog behind.

Every document has a version: the SHA-256 of its canonical JSON. A write
may name the version it was based on and fails with ConflictError when
the file has changed since. Read-modify-write cycles for one producer are
serialized with a per-producer lock.
"""

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Tuple, Union

from cenniki.core.exceptions import CatalogFormatError, CatalogNotFoundError, ConflictError
from cenniki.services.catalog_document import CatalogDocument, LayoutType

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def canonical_json(data: Any) -> str:
    """Stable JSON serialization used for version fingerprints"""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def document_version(data: Any) -> str:
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


class CatalogStore:
    """
    Catalog documents on disk, keyed by producer slug.

    Example:
        >>> store = CatalogStore("./data")
        >>> document = store.read("bomar", LayoutType.CATEGORY_GROUPED)
        >>> store.write("bomar", document, expected_version=document.version)
    """

    def __init__(self, data_dir: Union[str, Path]):
        self._data_dir = Path(data_dir)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def path_for(self, slug: str) -> Path:
        if not SLUG_RE.match(slug or ""):
            raise ValueError(f"Invalid producer slug: {slug!r}")
        return self._data_dir / f"{slug}.json"

    def exists(self, slug: str) -> bool:
        return self.path_for(slug).exists()

    @contextmanager
    def locked(self, slug: str) -> Iterator[None]:
        """Hold the producer's write lock (re-entrant within one thread)"""
        with self._locks_guard:
            lock = self._locks.setdefault(slug, threading.RLock())
        with lock:
            yield

    def _load(self, slug: str) -> Dict[str, Any]:
        path = self.path_for(slug)
        if not path.exists():
            raise CatalogNotFoundError(slug)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise CatalogFormatError(f"Catalog '{slug}' is not valid JSON: {e}")

    def read(self, slug: str, layout: Union[LayoutType, str]) -> CatalogDocument:
        """
        Read and decode a producer's catalog.

        Raises:
            CatalogNotFoundError: If the producer has no document on disk
            CatalogFormatError: If the document does not match the layout
        """
        data = self._load(slug)
        return CatalogDocument.decode(layout, data, version=document_version(data))

    def current_version(self, slug: str) -> Optional[str]:
        if not self.exists(slug):
            return None
        return document_version(self._load(slug))

    def write(
        self,
        slug: str,
        document: Union[CatalogDocument, Dict[str, Any]],
        expected_version: Optional[str] = None,
    ) -> str:
        """
        Replace a producer's catalog.

        Args:
            slug: Producer slug
            document: Decoded document or raw JSON data
            expected_version: Version the edit was based on; None skips the check

        Returns:
            Version of the written document

        Raises:
            ConflictError: If the stored document no longer has expected_version
        """
        data = document.data if isinstance(document, CatalogDocument) else document
        path = self.path_for(slug)

        with self.locked(slug):
            if expected_version is not None:
                actual = self.current_version(slug) or ""
                if actual != expected_version:
                    raise ConflictError(slug, expected_version, actual)

            self._atomic_write(path, data)

        version = document_version(data)
        logger.info(f"Saved catalog '{slug}' (version {version[:12]})")
        return version

    def update(
        self,
        slug: str,
        layout: Union[LayoutType, str],
        mutate: Callable[[CatalogDocument], CatalogDocument],
    ) -> Tuple[CatalogDocument, CatalogDocument]:
        """
        Read-modify-write under the producer lock.

        Returns:
            (document before, document after)
        """
        with self.locked(slug):
            before = self.read(slug, layout)
            after = mutate(before)
            after.version = self.write(slug, after, expected_version=before.version)
        return before, after

    def delete(self, slug: str) -> bool:
        path = self.path_for(slug)
        with self.locked(slug):
            if not path.exists():
                return False
            path.unlink()
        return True

    def _atomic_write(self, path: Path, data: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=2, ensure_ascii=False)

        temp_fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.stem}_",
            suffix=".tmp",
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                f.write(content)
            Path(temp_path).replace(path)
        except Exception:
            Path(temp_path).unlink(missing_ok=True)
            raise
