from __future__ import annotations

import json
import posixpath
from pathlib import Path
from typing import Any, Dict, List

from .errors import StorageError
from .util import eprint


def normalize_path(path: str) -> str:
    """Vault-relative, forward-slash path without leading/trailing slashes."""
    cleaned = path.replace("\\", "/").strip().strip("/")
    if not cleaned:
        return ""
    norm = posixpath.normpath(cleaned)
    if norm == ".":
        return ""
    if norm.startswith(".."):
        raise StorageError(f"Path escapes the vault: {path}")
    return norm


class DocumentStore:
    """Text documents and folders addressed by vault-relative paths."""

    def __init__(self, root: Path, verbose: bool=False):
        self.root = Path(root).expanduser()
        self.verbose = verbose

    def _log(self, msg: str):
        eprint(f"[Store] {msg}", self.verbose)

    def _path(self, path: str) -> Path:
        return self.root / normalize_path(path)

    def exists(self, path: str) -> bool:
        return self._path(path).is_file()

    def folder_exists(self, path: str) -> bool:
        return self._path(path).is_dir()

    def ensure_folder(self, path: str) -> str:
        folder = normalize_path(path)
        target = self._path(folder)
        if target.exists() and not target.is_dir():
            raise StorageError(f"{folder} exists but is not a folder")
        try:
            # exist_ok covers a concurrent writer creating it first
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Could not create folder {folder}: {e}")
        return folder

    def read(self, path: str) -> str:
        try:
            return self._path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Could not read {normalize_path(path)}: {e}")

    def write(self, path: str, content: str):
        target = self._path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except (OSError, UnicodeEncodeError) as e:
            raise StorageError(f"Could not write {normalize_path(path)}: {e}")
        self._log(f"wrote {normalize_path(path)}")

    def list_children(self, folder: str, extension: str=".md") -> List[str]:
        base = self._path(folder)
        if not base.is_dir():
            return []
        prefix = normalize_path(folder)
        names = sorted(p.name for p in base.iterdir() if p.is_file() and p.name.endswith(extension))
        return [f"{prefix}/{n}" if prefix else n for n in names]

    def read_json(self, path: str) -> Dict[str, Any]:
        if not self.exists(path):
            return {}
        try:
            data = json.loads(self.read(path))
        except (StorageError, json.JSONDecodeError) as e:
            self._log(f"Failed to read or parse {normalize_path(path)}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def write_json(self, path: str, data: Dict[str, Any]):
        self.write(path, json.dumps(data, indent=2, sort_keys=True))
