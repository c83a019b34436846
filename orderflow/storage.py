"""
orderflow/storage.py

Object store for uploaded artifacts (proofs, artwork, invoices).

Objects are keyed by order / item:

    orders/<order_id>/<item_id or "order">/<uuid>_<filename>

and kept under UPLOAD_FOLDER. Metadata lives in OrderFile rows; the store only knows bytes.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


def object_key(order_id: int, item_id: int | None, filename: str) -> str:
    safe = secure_filename(filename or "") or "upload.bin"
    scope = str(item_id) if item_id else "order"
    return f"orders/{order_id}/{scope}/{uuid.uuid4().hex}_{safe}"


class LocalObjectStore:
    def __init__(self, root: str | None = None):
        self.root = Path(root) if root else None

    def init_app(self, app) -> None:
        self.root = Path(app.config["UPLOAD_FOLDER"])

    def path_for(self, key: str) -> Path:
        if self.root is None:
            raise RuntimeError("Object store is not configured")
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid object key: {key}")
        return path

    def save(self, key: str, stream) -> int:
        """Write a file-like object under `key`; returns the byte size."""
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = stream.read()
        path.write_bytes(data)
        return len(data)

    def delete(self, key: str) -> bool:
        path = self.path_for(key)
        if not path.exists():
            logger.warning("Object %s already missing from store", key)
            return False
        path.unlink()
        return True

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()


object_store = LocalObjectStore()
