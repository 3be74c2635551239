from __future__ import annotations

import hashlib
import threading
from typing import Dict, List

from .errors import StorageError
from .store import DocumentStore, normalize_path
from .util import eprint

HASH_FILE = ".limitless/note-hashes.json"


def content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class ChangeHashTracker:
    """Remembers the digest of each note as it was when last summarized."""

    def __init__(self, store: DocumentStore, folder: str, hash_path: str=HASH_FILE, verbose: bool=False):
        self.store = store
        self.folder = folder
        self.hash_path = hash_path
        self.verbose = verbose
        self._lock = threading.Lock()

    def _log(self, msg: str):
        eprint(f"[Hash] {msg}", self.verbose)

    def load(self) -> Dict[str, str]:
        data = self.store.read_json(self.hash_path)
        return {str(k): str(v) for k, v in data.items()}

    def eligible_documents(self) -> List[str]:
        if not self.store.folder_exists(self.folder):
            self._log(f"Daily notes folder not found: {self.folder}")
            return []
        return self.store.list_children(self.folder, ".md")

    def changed_documents(self, force_all: bool=False) -> List[str]:
        documents = self.eligible_documents()
        if force_all:
            return documents
        hashes = self.load()
        changed = []
        for path in documents:
            try:
                digest = content_hash(self.store.read(path))
            except StorageError as e:
                self._log(f"Skipping unreadable note {path}: {e}")
                continue
            if hashes.get(path) != digest:
                changed.append(path)
        self._log(f"Found {len(changed)} of {len(documents)} notes needing summarization")
        return changed

    def record_hash(self, path: str, content: str):
        path = normalize_path(path)
        with self._lock:
            hashes = self.load()
            hashes[path] = content_hash(content)
            self.store.write_json(self.hash_path, hashes)
