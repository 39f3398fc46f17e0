"""
Upload Manifest Reader

Streams UploadItems out of a CSV manifest one row at a time, so uploads
can start while the rest of the file is still being read.
"""

import csv
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Union
import structlog

from .models import PATH_ON_CLIENT, UploadItem

logger = structlog.get_logger()


InvalidRowHandler = Callable[[UploadItem], None]


class Manifest:
    """
    A manifest opened for a single pass.

    The header is read and validated when the manifest is opened; data rows
    are parsed lazily as the manifest is iterated. Rows with a blank
    PathOnClient are not yielded: they are marked failed and handed to
    ``on_invalid`` instead.
    """

    def __init__(self, path: Union[str, Path], on_invalid: Optional[InvalidRowHandler] = None):
        self.path = Path(path).expanduser()
        self.on_invalid = on_invalid
        self.rows_read = 0
        self.rows_rejected = 0
        self._consumed = False

        try:
            # utf-8-sig drops a leading byte-order mark
            self._file = open(self.path, newline='', encoding='utf-8-sig')
        except OSError as e:
            raise ManifestNotFoundError(f"Manifest not readable: {self.path} ({e})") from e

        try:
            self._reader = csv.DictReader(self._file)
            self.columns: List[str] = self._read_header()
        except Exception:
            self._file.close()
            raise

        logger.info("manifest_opened", path=str(self.path), columns=self.columns)

    def _read_header(self) -> List[str]:
        try:
            header = self._reader.fieldnames
        except (csv.Error, UnicodeDecodeError) as e:
            raise ManifestFormatError(f"Manifest header unreadable: {self.path} ({e})") from e

        if not header:
            raise ManifestFormatError(f"Manifest has no header row: {self.path}")

        columns = [name.strip() for name in header]
        if PATH_ON_CLIENT not in columns:
            raise ManifestFormatError(
                f"Manifest header is missing required column '{PATH_ON_CLIENT}': {self.path}"
            )

        # Tolerate stray whitespace around header names
        self._reader.fieldnames = columns
        return columns

    def __iter__(self) -> Iterator[UploadItem]:
        if self._consumed:
            raise ManifestError(f"Manifest already read: {self.path}")
        self._consumed = True
        return self._items()

    def _items(self) -> Iterator[UploadItem]:
        try:
            for row in self._reader:
                self.rows_read += 1
                item = UploadItem.from_row(row, line_number=self._reader.line_num)

                if not item.path_on_client:
                    self._reject(item)
                    continue

                yield item
        except (csv.Error, UnicodeDecodeError) as e:
            raise ManifestFormatError(
                f"Manifest parse error at line {self._reader.line_num}: {e}"
            ) from e
        finally:
            self.close()

        logger.info("manifest_exhausted", path=str(self.path),
                    rows=self.rows_read, rejected=self.rows_rejected)

    def _reject(self, item: UploadItem) -> None:
        self.rows_rejected += 1
        item.mark_failed(f"{PATH_ON_CLIENT} is required (line {item.line_number})")
        logger.warning("manifest_row_rejected", path=str(self.path), line=item.line_number)

        if self.on_invalid:
            self.on_invalid(item)

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()

    def __enter__(self) -> 'Manifest':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def open_manifest(path: Union[str, Path], on_invalid: Optional[InvalidRowHandler] = None) -> Manifest:
    """Open a manifest and validate its header"""
    return Manifest(path, on_invalid=on_invalid)


def read_manifest(path: Union[str, Path]) -> Iterator[UploadItem]:
    """Iterate the valid items of a manifest"""
    return iter(open_manifest(path))


class ManifestError(Exception):
    """Manifest cannot be used"""
    pass


class ManifestNotFoundError(ManifestError):
    """Manifest does not exist or cannot be opened"""
    pass


class ManifestFormatError(ManifestError):
    """Manifest is not a usable CSV"""
    pass
