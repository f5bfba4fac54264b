"""Stripping and restoring embedded media of office documents.

Documents like ``.pptx`` and ``.docx`` are ZIP archives, and most of their
size is usually images, video and audio. Minification extracts the archive,
moves every supported media file into a backup directory (keeping its
relative path) and leaves a tiny placeholder behind, so the re-zipped
document can be uploaded for translation. Deminification extracts the
translated document and moves the backed-up media back to the same relative
paths.

Working directory layout::

    <work_dir>/extracted/        the unzipped document
    <work_dir>/original-media/   original media, same relative paths
    <work_dir>/minifiedDoc.<ext> the minified archive

A ``DocumentMinifier`` is bound to one working directory and handles one
document. Minifying several documents at the same time needs one instance
each.
"""
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from document_translation_client.exceptions import (
    DocumentDeminificationError,
    DocumentMinificationError,
)

PathLike = Union[str, Path]

SUPPORTED_DOCUMENT_TYPES = frozenset({".pptx", ".docx"})

SUPPORTED_MEDIA_FORMATS = frozenset(
    {
        # images
        ".png", ".jpg", ".jpeg", ".emf", ".bmp", ".tiff", ".wdp", ".svg", ".gif",
        # video
        ".mp4", ".asf", ".avi", ".m4v", ".mpg", ".mpeg", ".wmv", ".mov",
        # audio
        ".aiff", ".au", ".mid", ".midi", ".mp3", ".m4a", ".wav", ".wma",
    }
)

EXTRACTED_DOC_DIR_NAME = "extracted"
ORIGINAL_MEDIA_DIR_NAME = "original-media"
MINIFIED_DOC_FILE_BASE_NAME = "minifiedDoc"
MINIFIED_DOC_SIZE_LIMIT_WARNING = 5_000_000
MEDIA_PLACEHOLDER = b"Document Media Placeholder"


def is_media_file(path: PathLike) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_MEDIA_FORMATS


def _extract_zip(archive_path: Path, target_dir: Path) -> None:
    target_dir.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive_path) as archive:
        archive.extractall(target_dir)


def _zip_directory(source_dir: Path, archive_path: Path) -> None:
    with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(source_dir.rglob("*")):
            if path.is_file():
                archive.write(path, path.relative_to(source_dir).as_posix())


class DocumentMinifier:
    def __init__(self, work_dir: Optional[PathLike] = None):
        if work_dir is None:
            try:
                work_dir = tempfile.mkdtemp(prefix="document_minification_")
            except OSError as e:
                raise DocumentMinificationError(
                    f"Failed creating a temporary directory: {e}", e
                ) from e
        self.work_dir = Path(work_dir)
        self.logger = logger

    @staticmethod
    def can_minify_file(input_path: PathLike) -> bool:
        if not str(input_path).strip():
            return False
        return Path(input_path).suffix.lower() in SUPPORTED_DOCUMENT_TYPES

    @property
    def extracted_doc_dir(self) -> Path:
        return self.work_dir / EXTRACTED_DOC_DIR_NAME

    @property
    def original_media_dir(self) -> Path:
        return self.work_dir / ORIGINAL_MEDIA_DIR_NAME

    def minified_doc_path(self, input_path: PathLike) -> Path:
        return self.work_dir / f"{MINIFIED_DOC_FILE_BASE_NAME}{Path(input_path).suffix}"

    def minify_document(self, input_path: PathLike, cleanup: bool = False) -> Path:
        """Creates a copy of the document with its media replaced by placeholders.

        The original media stay in ``original_media_dir``. With ``cleanup``
        the extracted document is removed afterwards. The file type is not
        checked, call ``can_minify_file`` first.

        Returns the path of the minified document.
        """
        input_path = Path(input_path)
        extracted_dir = self.extracted_doc_dir
        minified_path = self.minified_doc_path(input_path)

        try:
            _extract_zip(input_path, extracted_dir)
        except (OSError, zipfile.BadZipFile) as e:
            raise DocumentMinificationError(
                f"Exception when extracting document: Failed to extract {input_path} to {extracted_dir}",
                e,
            ) from e

        media_count = self._export_media_and_replace(extracted_dir, self.original_media_dir)

        try:
            _zip_directory(extracted_dir, minified_path)
        except OSError as e:
            raise DocumentMinificationError(f"Failed creating a zip file at {minified_path}", e) from e

        if cleanup:
            try:
                shutil.rmtree(extracted_dir)
            except OSError as e:
                raise DocumentMinificationError(f"Failed to delete directory {extracted_dir}", e) from e

        size = minified_path.stat().st_size
        self.logger.debug(f"Minified {input_path} to {minified_path} ({size} bytes, {media_count} media files)")
        if size > MINIFIED_DOC_SIZE_LIMIT_WARNING:
            self.logger.warning(
                "The input file could not be minified below 5 MB, likely a media type is missing. "
                "This might cause the translation to fail."
            )
        return minified_path

    def deminify_document(self, input_path: PathLike, output_path: PathLike, cleanup: bool = False) -> None:
        """Reinserts the original media into a minified document, writing ``output_path``.

        ``input_path`` and ``output_path`` may be the same file. With
        ``cleanup`` the whole working directory is removed afterwards.
        """
        input_path = Path(input_path)
        output_path = Path(output_path)
        extracted_dir = self.extracted_doc_dir

        try:
            extracted_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DocumentDeminificationError(
                f"Exception when deminifying, could not create directory at {extracted_dir}.", e
            ) from e

        try:
            _extract_zip(input_path, extracted_dir)
        except (OSError, zipfile.BadZipFile) as e:
            raise DocumentDeminificationError(
                f"Exception when extracting document: Failed to extract {input_path} to {extracted_dir}",
                e,
            ) from e

        self._reinsert_media(extracted_dir, self.original_media_dir)

        try:
            output_path.unlink(missing_ok=True)
            _zip_directory(extracted_dir, output_path)
        except OSError as e:
            raise DocumentDeminificationError(f"Failed creating a zip file at {output_path}", e) from e

        if cleanup:
            try:
                shutil.rmtree(self.work_dir)
            except OSError as e:
                raise DocumentDeminificationError(f"Failed to delete directory {self.work_dir}", e) from e

    def _export_media_and_replace(self, input_dir: Path, media_dir: Path) -> int:
        """Moves supported media from ``input_dir`` to the same relative path under ``media_dir``"""
        count = 0
        for file_path in sorted(input_dir.rglob("*")):
            if not file_path.is_file() or not is_media_file(file_path):
                continue

            media_path = media_dir / file_path.relative_to(input_dir)
            try:
                media_path.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(file_path), str(media_path))
                file_path.write_bytes(MEDIA_PLACEHOLDER)
            except OSError as e:
                raise DocumentMinificationError(
                    f"Exception when exporting and replacing media file {file_path}", e
                ) from e
            count += 1
        return count

    def _reinsert_media(self, input_dir: Path, media_dir: Path) -> None:
        """Moves every backed-up media file back over its placeholder in ``input_dir``"""
        if not media_dir.is_dir():
            return

        for media_path in sorted(media_dir.rglob("*")):
            if not media_path.is_file():
                continue

            target_path = input_dir / media_path.relative_to(media_dir)
            try:
                target_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise DocumentDeminificationError(
                    f"Exception when reinserting media. Failed to create directory at {target_path.parent}.",
                    e,
                ) from e

            try:
                target_path.unlink(missing_ok=True)
                shutil.move(str(media_path), str(target_path))
            except OSError as e:
                raise DocumentDeminificationError(
                    f"Exception when reinserting media. Failed to move media back to {target_path}.",
                    e,
                ) from e
