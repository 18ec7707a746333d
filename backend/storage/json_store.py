import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional, Sequence

from backend.core.errors import StorageError

logger = logging.getLogger(__name__)

COLLECTIONS = ("candidates", "mentors", "courses", "users", "audit", "notifications", "corrections")


def check_collection(name: str) -> str:
    if name not in COLLECTIONS:
        raise StorageError(f"Unknown collection '{name}'")
    return name


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return json.loads(text or "[]")


class JsonFileStore:
    """One ``<collection>.json`` file per collection under ``data_dir``."""

    def __init__(self, data_dir: str):
        self.data_dir = data_dir

    def path_for(self, collection: str) -> str:
        return os.path.join(self.data_dir, f"{check_collection(collection)}.json")

    def initialize(self, seeds: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        """Create the data directory and any missing collection file; seeds only land in new files."""
        seeds = seeds or {}
        logger.info("Initializing JSON storage in %s", self.data_dir)
        os.makedirs(self.data_dir, exist_ok=True)
        for name in COLLECTIONS:
            path = self.path_for(name)
            if os.path.exists(path):
                continue
            logger.info("Creating %s", os.path.basename(path))
            self.write(name, seeds.get(name, []))

    def read(self, collection: str) -> List[Dict[str, Any]]:
        path = self.path_for(collection)
        if not os.path.exists(path):
            return []
        try:
            data = _read_json(path)
        except (OSError, ValueError) as e:
            raise StorageError(f"Could not read {collection}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"Collection file {os.path.basename(path)} does not hold a list")
        return data

    def write(self, collection: str, records: Sequence[Dict[str, Any]]) -> None:
        path = self.path_for(collection)
        # write to a sibling temp file, then swap it in
        fd, tmp = tempfile.mkstemp(prefix=f".{collection}.", suffix=".tmp", dir=self.data_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(list(records), f, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except OSError as e:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise StorageError(f"Could not write {collection}: {e}") from e
