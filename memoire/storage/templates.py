"""
Blob storage and persistence of internal templates.

One blob per document holds the template package and its mapping table, so a
new build replaces the previous one in a single write (last writer wins).
"""
from __future__ import annotations

import base64
import hashlib
import json
import os
import threading
from pathlib import Path
from typing import Dict, Optional

from memoire import config
from memoire.documents.templating.template_builder import InternalTemplate, QuestionPositionMapping
from memoire.errors import TemplateNotFound
from memoire.utils.debug import dbg


class BlobStorage:
    """Opaque byte storage addressed by relative path."""

    def read(self, path: str) -> bytes:
        raise NotImplementedError

    def write(self, path: str, data: bytes) -> None:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError


class LocalBlobStorage(BlobStorage):
    def __init__(self, root: Optional[Path] = None) -> None:
        self._root = Path(root or config.STORAGE_DIR)
        self._root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root.resolve() not in target.parents:
            raise ValueError(f"Blob path escapes storage root: {path}")
        return target

    def read(self, path: str) -> bytes:
        return self._path_for(path).read_bytes()

    def write(self, path: str, data: bytes) -> None:
        target = self._path_for(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{target.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        tmp.write_bytes(data)
        os.replace(tmp, target)

    def exists(self, path: str) -> bool:
        return self._path_for(path).exists()

    def delete(self, path: str) -> None:
        target = self._path_for(path)
        if target.exists():
            target.unlink()


class InMemoryBlobStorage(BlobStorage):
    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def read(self, path: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[path]
            except KeyError:
                raise FileNotFoundError(path) from None

    def write(self, path: str, data: bytes) -> None:
        with self._lock:
            self._blobs[path] = bytes(data)

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._blobs

    def delete(self, path: str) -> None:
        with self._lock:
            self._blobs.pop(path, None)


def _safe_id(document_id: str) -> str:
    """Readable prefix plus a digest of the full id, so distinct ids never share a blob."""
    if not document_id:
        raise ValueError(f"Unusable document id: {document_id!r}")
    prefix = "".join(c for c in document_id if c.isascii() and (c.isalnum() or c in ("-", "_")))[:64]
    digest = hashlib.sha256(document_id.encode("utf-8")).hexdigest()[:16]
    return f"{prefix}-{digest}" if prefix else digest


class TemplateStore:
    """Stores exactly one internal template per document id."""

    def __init__(self, blobs: Optional[BlobStorage] = None) -> None:
        self._blobs = blobs or LocalBlobStorage()

    @staticmethod
    def path_for(document_id: str) -> str:
        return f"templates/{_safe_id(document_id)}.json"

    def save(self, document_id: str, template: InternalTemplate) -> None:
        payload = {
            "document_id": document_id,
            "created_at": template.created_at,
            "original_hash": template.original_hash,
            "mappings": [m.to_dict() for m in template.mappings],
            "package": base64.b64encode(template.package_bytes).decode("ascii"),
        }
        self._blobs.write(self.path_for(document_id), json.dumps(payload, ensure_ascii=False).encode("utf-8"))
        dbg(f"stored template for {document_id} ({len(template.mappings)} mappings)", tag="Store")

    def load(self, document_id: str) -> InternalTemplate:
        try:
            raw = self._blobs.read(self.path_for(document_id))
        except FileNotFoundError as exc:
            raise TemplateNotFound(f"No internal template stored for document {document_id}") from exc
        payload = json.loads(raw.decode("utf-8"))
        return InternalTemplate(
            package_bytes=base64.b64decode(payload["package"]),
            mappings=[QuestionPositionMapping.from_dict(m) for m in payload.get("mappings", [])],
            original_hash=payload["original_hash"],
            created_at=payload.get("created_at") or "",
        )

    def exists(self, document_id: str) -> bool:
        return self._blobs.exists(self.path_for(document_id))

    def delete(self, document_id: str) -> None:
        self._blobs.delete(self.path_for(document_id))
