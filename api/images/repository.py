"""
Image blob storage on local disk.

Each image is two files in `image_dir`:
- `{id}`       raw bytes
- `{id}.meta`  JSON sidecar: {"file_name": ..., "mime_type": ...}

Blob writes are not transactional with ad rows. If an ad insert fails after
its images were written, the files stay behind.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


class ImageStoreError(RuntimeError):
    pass


class ImageNotFoundError(ImageStoreError):
    pass


@dataclass(frozen=True)
class Image:
    id: str
    file_name: str
    mime_type: str
    data: bytes


class ImageRepository(Protocol):
    async def get_image(self, image_id: str) -> Image: ...

    async def create_image(self, file_name: str, data: bytes, mime_type: str) -> str: ...

    async def delete_image(self, image_id: str) -> None: ...


def _checked_id(image_id: str) -> str:
    # Ids are UUIDs we generated; anything else could escape the directory.
    try:
        return str(uuid.UUID(image_id))
    except (ValueError, TypeError, AttributeError) as exc:
        raise ImageNotFoundError(f"Invalid image id: {image_id!r}") from exc


class LocalImageRepository:
    def __init__(self, image_dir: str | Path) -> None:
        self.image_dir = Path(image_dir)

    def ensure_dir(self) -> None:
        self.image_dir.mkdir(parents=True, exist_ok=True)

    def _paths(self, image_id: str) -> tuple[Path, Path]:
        image_id = _checked_id(image_id)
        return self.image_dir / image_id, self.image_dir / f"{image_id}.meta"

    def _read(self, image_id: str) -> Image:
        path, meta_path = self._paths(image_id)
        try:
            data = path.read_bytes()
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ImageNotFoundError(f"Image {image_id} not found.") from exc
        except (OSError, ValueError) as exc:
            raise ImageStoreError(f"Could not read image {image_id}: {exc}") from exc

        try:
            return Image(
                id=image_id,
                file_name=str(meta["file_name"]),
                mime_type=str(meta["mime_type"]),
                data=data,
            )
        except (KeyError, TypeError) as exc:
            raise ImageStoreError(f"Corrupt metadata for image {image_id}.") from exc

    def _write(self, image_id: str, file_name: str, data: bytes, mime_type: str) -> None:
        path, meta_path = self._paths(image_id)
        meta = {"file_name": file_name, "mime_type": mime_type}
        try:
            path.write_bytes(data)
            meta_path.write_text(json.dumps(meta), encoding="utf-8")
        except OSError as exc:
            raise ImageStoreError(f"Could not write image {image_id}: {exc}") from exc

    def _remove(self, image_id: str) -> None:
        path, meta_path = self._paths(image_id)
        try:
            path.unlink()
            meta_path.unlink()
        except FileNotFoundError as exc:
            raise ImageNotFoundError(f"Image {image_id} not found.") from exc
        except OSError as exc:
            raise ImageStoreError(f"Could not delete image {image_id}: {exc}") from exc

    async def get_image(self, image_id: str) -> Image:
        return await asyncio.to_thread(self._read, image_id)

    async def create_image(self, file_name: str, data: bytes, mime_type: str) -> str:
        image_id = str(uuid.uuid4())
        await asyncio.to_thread(self._write, image_id, file_name, data, mime_type)
        return image_id

    async def delete_image(self, image_id: str) -> None:
        await asyncio.to_thread(self._remove, image_id)
