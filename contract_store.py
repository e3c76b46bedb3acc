from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

DOCUMENT_FILENAME = "contract.docx"
EXECUTIVE_FILENAME = "executive.txt"


class ContractStoreError(RuntimeError):
    pass


class ContractStore:
    """
    Local key-value persistence for the last generated contract and the executive name.

    Each slot holds a single value: a put replaces whatever was there. Writes go to a
    temporary file in the same directory and are renamed into place, so a reader never
    sees a half-written document.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    @property
    def document_path(self) -> Path:
        return self.root / DOCUMENT_FILENAME

    @property
    def executive_path(self) -> Path:
        return self.root / EXECUTIVE_FILENAME

    def put_document(self, blob: bytes) -> None:
        if not isinstance(blob, (bytes, bytearray)):
            raise TypeError("blob must be bytes")
        self._write(self.document_path, bytes(blob))
        logger.info("Stored contract document (%d bytes)", len(blob))

    def get_document(self) -> Optional[bytes]:
        return self._read(self.document_path)

    def put_executive(self, name: str) -> None:
        name = (name or "").strip()
        if not name:
            self.delete_executive()
            return
        self._write(self.executive_path, name.encode("utf-8"))

    def get_executive(self) -> str:
        raw = self._read(self.executive_path)
        return raw.decode("utf-8").strip() if raw else ""

    def delete_executive(self) -> None:
        try:
            self.executive_path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise ContractStoreError(f"Could not delete {self.executive_path}: {e}") from e

    def _read(self, path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise ContractStoreError(f"Could not read {path}: {e}") from e

    def _write(self, path: Path, data: bytes) -> None:
        tmp_name = ""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise ContractStoreError(f"Could not write {path}: {e}") from e
