# src/wikimirror/store.py
"""Durable page stores: SQLite database or the on-disk mirror tree.

Stores are append-only. Inserting a page or an edge that already exists
is a successful no-op, and a page is only ever visible together with all
of its template edges.
"""

import os
import sqlite3
import sys
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional
import logging

from wikimirror.config import settings
from wikimirror.errors import StoreError
from wikimirror.models import StoredPage

logger = logging.getLogger(__name__)

CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS pages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    content TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS templates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS page_templates (
    page_id INTEGER NOT NULL REFERENCES pages(id),
    template_id INTEGER NOT NULL REFERENCES templates(id),
    PRIMARY KEY (page_id, template_id)
);
"""


class AbstractPageStore(ABC):
    """Abstract base class defining the page store interface."""

    @abstractmethod
    def connect(self) -> None:
        """Open the underlying storage."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying storage."""
        pass

    @abstractmethod
    def create_schema(self) -> None:
        """Create tables or directories if they don't exist."""
        pass

    @abstractmethod
    def exists_or_load(self, identifier: str) -> Optional[StoredPage]:
        """Load a stored page.

        Args:
            identifier: Page identifier

        Returns:
            The stored content and template identifiers, or None if absent.

        Raises:
            StoreError: If the identifier cannot be stored by this backend
                or the storage cannot be read.
        """
        pass

    @abstractmethod
    def commit(self, identifier: str, content: str, templates: Iterable[str]) -> None:
        """Atomically insert a page and its template edges.

        Either the page and every edge become visible, or nothing does.
        Existing pages and edges are left untouched.

        Raises:
            StoreError: If the write could not complete.
        """
        pass

    @abstractmethod
    def identifiers(self) -> List[str]:
        """All stored page identifiers, sorted."""
        pass

    @abstractmethod
    def edge_count(self) -> int:
        """Number of distinct (page, template) edges."""
        pass

    def contains(self, identifier: str) -> bool:
        return self.exists_or_load(identifier) is not None

    def page_count(self) -> int:
        return len(self.identifiers())

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class SqlitePageStore(AbstractPageStore):
    """SQLite page store.

    Every call runs under one lock, so a store can be shared by fetch
    worker threads while reads and commits stay serialized.
    """

    def __init__(self, db_url: Optional[str] = None):
        """Initialize the SQLite store.

        Args:
            db_url: Database URL (sqlite:///path/to/db.db). Defaults to settings.DATABASE_URL.
        """
        self.db_url = db_url or settings.DATABASE_URL
        self.db_path = self.db_url.replace("sqlite:///", "")
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self.connect()
        self.create_schema()

    def connect(self) -> None:
        """Establish SQLite connection."""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        logger.debug(f"Connected to SQLite page store: {self.db_path}")

    def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed SQLite page store")

    def create_schema(self) -> None:
        """Create the page, template and edge tables if they don't exist."""
        with self._lock:
            self.conn.executescript(CREATE_SCHEMA_SQL)
            self.conn.commit()
        logger.debug("Schema verified/created for SQLite page store")

    def exists_or_load(self, identifier: str) -> Optional[StoredPage]:
        with self._lock:
            try:
                row = self.conn.execute(
                    "SELECT id, content FROM pages WHERE name = ?", (identifier,)
                ).fetchone()
                if row is None:
                    return None
                cursor = self.conn.execute(
                    "SELECT t.name FROM page_templates pt "
                    "JOIN templates t ON t.id = pt.template_id "
                    "WHERE pt.page_id = ?",
                    (row["id"],),
                )
                templates = {r["name"] for r in cursor.fetchall()}
            except sqlite3.Error as e:
                raise StoreError(f"cannot load page: {e}", identifier) from e
        return StoredPage(identifier=identifier, content=row["content"], templates=templates)

    def commit(self, identifier: str, content: str, templates: Iterable[str]) -> None:
        templates = sorted(set(templates))
        with self._lock:
            try:
                with self.conn:
                    self.conn.execute(
                        "INSERT OR IGNORE INTO pages (name, content) VALUES (?, ?)",
                        (identifier, content),
                    )
                    page_id = self.conn.execute(
                        "SELECT id FROM pages WHERE name = ?", (identifier,)
                    ).fetchone()["id"]
                    for template in templates:
                        self.conn.execute(
                            "INSERT OR IGNORE INTO templates (name) VALUES (?)", (template,)
                        )
                        template_id = self.conn.execute(
                            "SELECT id FROM templates WHERE name = ?", (template,)
                        ).fetchone()["id"]
                        self.conn.execute(
                            "INSERT OR IGNORE INTO page_templates (page_id, template_id) VALUES (?, ?)",
                            (page_id, template_id),
                        )
            except sqlite3.Error as e:
                raise StoreError(f"cannot store page: {e}", identifier) from e
        logger.debug(f"Stored {identifier} with {len(templates)} templates")

    def identifiers(self) -> List[str]:
        with self._lock:
            cursor = self.conn.execute("SELECT name FROM pages ORDER BY name")
            return [row["name"] for row in cursor.fetchall()]

    def page_count(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM pages").fetchone()[0]

    def edge_count(self) -> int:
        with self._lock:
            return self.conn.execute("SELECT COUNT(*) FROM page_templates").fetchone()[0]


NAMESPACE_DIRS = ("File", "Template")

# Most file systems cap a name at 255 bytes; leaves room for ".templates".
MAX_SEGMENT_BYTES = 240


def make_page_fn(root: Path, identifier: str) -> Path:
    """Map a page identifier to its path (without suffix) in the mirror tree.

    A leading namespace goes to a subdirectory (Template:foo -> Template/foo);
    remaining colons are not valid in Windows file names. Every identifier
    gets a path of its own strictly inside root.

    Raises:
        StoreError: If the identifier has no such path.
    """
    if "\x00" in identifier:
        raise StoreError("identifier contains a NUL character", identifier)

    name = identifier
    for namespace in NAMESPACE_DIRS:
        if name.startswith(f"{namespace}/"):
            raise StoreError(f"identifier would alias the {namespace}: namespace", identifier)
        if name.startswith(f"{namespace}:"):
            name = f"{namespace}/" + name[len(namespace) + 1:]
    if sys.platform == "win32":
        if "\\" in name:
            raise StoreError("identifier contains a path separator", identifier)
        name = name.replace(":", "_")

    segments = name.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        raise StoreError("identifier has an empty or relative path segment", identifier)
    if any(len(segment.encode("utf-8")) > MAX_SEGMENT_BYTES for segment in segments):
        raise StoreError("identifier has a path segment too long for a file name", identifier)

    path = root / name
    try:
        contained = path.resolve().is_relative_to(root.resolve())
    except (OSError, ValueError) as e:
        raise StoreError(f"cannot resolve mirror path: {e}", identifier) from e
    if not contained:
        raise StoreError("identifier escapes the mirror root", identifier)
    return path


class FileMirrorStore(AbstractPageStore):
    """Page store laid out as a mirror tree.

    Each page is <root>/<identifier>.txt with its template identifiers one
    per line in <root>/<identifier>.templates. The templates file is written
    first and the .txt last, both via rename, so a page exists only once
    it is complete.
    """

    CONTENT_SUFFIX = ".txt"
    TEMPLATES_SUFFIX = ".templates"

    def __init__(self, root: Optional[str] = None):
        """Initialize the mirror tree store.

        Args:
            root: Mirror root directory. Defaults to settings.MIRROR_ROOT.
        """
        self.root = Path(root or settings.MIRROR_ROOT)
        self._lock = threading.RLock()
        self.connect()
        self.create_schema()

    def connect(self) -> None:
        logger.debug(f"Using mirror tree page store: {self.root}")

    def close(self) -> None:
        pass

    def create_schema(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def _paths(self, identifier: str):
        base = str(make_page_fn(self.root, identifier))
        return Path(base + self.CONTENT_SUFFIX), Path(base + self.TEMPLATES_SUFFIX)

    def exists_or_load(self, identifier: str) -> Optional[StoredPage]:
        content_path, templates_path = self._paths(identifier)
        with self._lock:
            try:
                if not content_path.is_file():
                    return None
                content = content_path.read_text(encoding="utf-8")
                templates = set()
                if templates_path.exists():
                    templates = {
                        line for line in templates_path.read_text(encoding="utf-8").splitlines()
                        if line
                    }
            except (OSError, ValueError) as e:
                raise StoreError(f"cannot load page: {e}", identifier) from e
        return StoredPage(identifier=identifier, content=content, templates=templates)

    def commit(self, identifier: str, content: str, templates: Iterable[str]) -> None:
        content_path, templates_path = self._paths(identifier)
        lines = "".join(f"{t}\n" for t in sorted(set(templates)))
        with self._lock:
            try:
                if content_path.exists():
                    return
                content_path.parent.mkdir(parents=True, exist_ok=True)
                self._write_atomic(templates_path, lines)
                self._write_atomic(content_path, content)
            except (OSError, ValueError) as e:
                raise StoreError(f"cannot store page: {e}", identifier) from e
        logger.debug(f"Stored {identifier} under {content_path}")

    @staticmethod
    def _write_atomic(path: Path, text: str) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            os.replace(tmp_name, path)
        except OSError:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

    def identifiers(self) -> List[str]:
        names = []
        with self._lock:
            for path in self.root.rglob(f"*{self.CONTENT_SUFFIX}"):
                rel = path.relative_to(self.root).as_posix()[: -len(self.CONTENT_SUFFIX)]
                for namespace in NAMESPACE_DIRS:
                    if rel.startswith(f"{namespace}/"):
                        rel = f"{namespace}:" + rel[len(namespace) + 1:]
                names.append(rel)
        return sorted(names)

    def edge_count(self) -> int:
        count = 0
        with self._lock:
            for path in self.root.rglob(f"*{self.CONTENT_SUFFIX}"):
                templates_path = path.with_suffix(self.TEMPLATES_SUFFIX)
                if templates_path.exists():
                    count += len({
                        line for line in templates_path.read_text(encoding="utf-8").splitlines()
                        if line
                    })
        return count


def get_page_store(
    backend: Optional[str] = None,
    **kwargs,
) -> AbstractPageStore:
    """Factory function to create the appropriate page store.

    Args:
        backend: Store backend ('sqlite' or 'files'). Defaults to settings.STORE_BACKEND.
        **kwargs: Additional arguments passed to the store constructor.

    Returns:
        An instance of AbstractPageStore (either SqlitePageStore or FileMirrorStore).

    Raises:
        ValueError: If an unknown backend is specified.
    """
    backend = backend or settings.STORE_BACKEND

    if backend == "sqlite":
        logger.info("Using SQLite page store")
        return SqlitePageStore(**kwargs)
    elif backend == "files":
        logger.info("Using mirror tree page store")
        return FileMirrorStore(**kwargs)
    else:
        raise ValueError(
            f"Unknown store backend: '{backend}'. "
            "Supported backends: 'sqlite', 'files'"
        )
