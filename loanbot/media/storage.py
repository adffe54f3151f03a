"""Upload storage on disk and zip packaging of a finished application."""
from __future__ import annotations

import asyncio
import logging
import re
import time
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Sequence

from loanbot.collaborators import NoContentError, StorageError
from loanbot.models import ArchiveHandle, FetchedAttachment, UploadRecord

logger = logging.getLogger(__name__)

# Map WhatsApp MIME types to file extensions
_MIME_TO_EXT: dict[str, str] = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "text/plain": ".txt",
}


def sanitize_file_name(name: str) -> str:
    cleaned = re.sub(r"[^a-zA-Z0-9._-]", "_", name)
    cleaned = re.sub(r"_{2,}", "_", cleaned)
    return cleaned.strip("_") or "file"


def file_extension(file_name: str, mime_type: str) -> str:
    suffix = Path(file_name).suffix if file_name else ""
    if suffix:
        return suffix.lower()
    return _MIME_TO_EXT.get(mime_type.split(";")[0].strip().lower(), ".bin")


class DocumentStorage:
    """Writes uploads to ``<root>/<phone>/<loan type>/`` and zips them.

    Each stored file gets a ``.meta.json`` sidecar with its UploadRecord so
    the tree can be inspected without the bot running.
    """

    def __init__(self, uploads_dir: Path, archives_dir: Path) -> None:
        self.uploads_dir = Path(uploads_dir)
        self.archives_dir = Path(archives_dir)

    def user_directory(self, session_id: str, category: str) -> Path:
        return (
            self.uploads_dir
            / sanitize_file_name(session_id)
            / sanitize_file_name(category)
        )

    # ── uploads ─────────────────────────────────────────────────────

    async def save_upload(
        self,
        session_id: str,
        category: str,
        item_name: str,
        media_kind: str,
        fetched: FetchedAttachment,
        original_name: str = "",
    ) -> UploadRecord:
        source_name = original_name or fetched.suggested_name or "document"
        try:
            return await asyncio.to_thread(
                self._write_upload,
                session_id,
                category,
                item_name,
                media_kind,
                fetched,
                source_name,
            )
        except OSError as exc:
            logger.exception("Error saving %s for %s", item_name, session_id)
            raise StorageError(f"Failed to save file: {exc}") from exc

    def _write_upload(
        self,
        session_id: str,
        category: str,
        item_name: str,
        media_kind: str,
        fetched: FetchedAttachment,
        source_name: str,
    ) -> UploadRecord:
        dest_dir = self.user_directory(session_id, category)
        dest_dir.mkdir(parents=True, exist_ok=True)

        stem = sanitize_file_name(Path(source_name).stem)
        ext = file_extension(source_name, fetched.mime_type)
        file_name = f"{int(time.time() * 1000)}_{sanitize_file_name(item_name)}_{stem}{ext}"
        dest_path = dest_dir / file_name
        dest_path.write_bytes(fetched.data)

        record = UploadRecord(
            item_name=item_name,
            source_file_name=source_name,
            media_kind=media_kind,
            mime_type=fetched.mime_type,
            size_bytes=len(fetched.data),
            stored_path=str(dest_path),
        )
        meta_path = dest_dir / f"{file_name}.meta.json"
        meta_path.write_text(record.model_dump_json(indent=2), encoding="utf-8")
        logger.info("File saved: %s for %s", file_name, session_id)
        return record

    # ── packaging ───────────────────────────────────────────────────

    async def package_uploads(
        self,
        session_id: str,
        category: str,
        records: Sequence[UploadRecord],
        allow_empty: bool = False,
    ) -> ArchiveHandle:
        if not records and not allow_empty:
            raise NoContentError(f"No documents found for {session_id}")
        try:
            return await asyncio.to_thread(
                self._write_archive, session_id, category, list(records)
            )
        except (OSError, zipfile.BadZipFile) as exc:
            logger.exception("Error creating zip file for %s", session_id)
            raise StorageError(f"Failed to create zip file: {exc}") from exc

    def _write_archive(
        self, session_id: str, category: str, records: list[UploadRecord]
    ) -> ArchiveHandle:
        self.archives_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%dT%H%M%S%f")
        zip_name = (
            f"{sanitize_file_name(session_id)}_{sanitize_file_name(category)}_{stamp}.zip"
        )
        zip_path = self.archives_dir / zip_name

        added = 0
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for record in records:
                src = Path(record.stored_path)
                if not src.is_file():
                    logger.warning("Stored file missing, not packaged: %s", src)
                    continue
                zf.write(src, arcname=src.name)
                added += 1

        if added == 0 and records:
            zip_path.unlink(missing_ok=True)
            raise NoContentError(f"No valid documents found to zip for {session_id}")

        size = zip_path.stat().st_size
        logger.info("Created zip file: %s with %d files", zip_name, added)
        return ArchiveHandle(path=str(zip_path), size_bytes=size, item_count=added)

    def delete_archive(self, path: str) -> bool:
        target = Path(path)
        try:
            if target.exists():
                target.unlink()
                logger.info("Deleted zip file: %s", target)
                return True
        except OSError:
            logger.exception("Error deleting zip file %s", target)
        return False
