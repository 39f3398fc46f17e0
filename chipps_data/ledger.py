"""
Upload Result Ledgers

success.csv and error.csv, appended to by upload workers as items finish.
Each ledger serialises its writes behind a lock, so rows from concurrent
workers never interleave.
"""

import csv
import threading
from pathlib import Path
from typing import List, Optional, Union
import structlog

from .models import ERROR_COLUMNS, SUCCESS_COLUMNS, Failure, Success, UploadItem, UploadOutcome

logger = structlog.get_logger()


SUCCESS_FILE = "success.csv"
ERROR_FILE = "error.csv"


class CsvLedger:
    """Append-only CSV file with a fixed header"""

    def __init__(self, path: Union[str, Path], columns: List[str]):
        self.path = Path(path)
        self.columns = list(columns)
        self.rows_written = 0
        self._lock = threading.Lock()

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, 'w', newline='', encoding='utf-8')
        self._writer = csv.DictWriter(self._file, fieldnames=self.columns, extrasaction='ignore')
        self._writer.writeheader()
        self._file.flush()

    @property
    def closed(self) -> bool:
        return self._file.closed

    def append(self, item: UploadItem) -> None:
        """Write one row for the item and flush it to disk"""
        row = item.to_row()

        with self._lock:
            if self._file.closed:
                raise ValueError(f"Ledger is closed: {self.path}")
            self._writer.writerow(row)
            self._file.flush()
            self.rows_written += 1

    def close(self) -> None:
        with self._lock:
            if not self._file.closed:
                self._file.flush()
                self._file.close()


class ResultSink:
    """
    Routes finished items to the success or the error ledger.

    No deduplication: recording the same item twice writes two rows.
    """

    def __init__(
        self,
        success_path: Union[str, Path] = SUCCESS_FILE,
        error_path: Union[str, Path] = ERROR_FILE
    ):
        self.success = CsvLedger(success_path, SUCCESS_COLUMNS)
        try:
            self.errors = CsvLedger(error_path, ERROR_COLUMNS)
        except Exception:
            self.success.close()
            raise

    @classmethod
    def in_directory(cls, output_dir: Optional[Union[str, Path]] = None) -> 'ResultSink':
        """Create both ledgers under output_dir (default: working directory)"""
        base = Path(output_dir).expanduser() if output_dir else Path('.')
        return cls(base / SUCCESS_FILE, base / ERROR_FILE)

    def record_success(self, item: UploadItem) -> None:
        self.success.append(item)
        logger.debug("ledger_success_row", path_on_client=item.path_on_client,
                     content_document_id=item.content_document_id)

    def record_failure(self, item: UploadItem) -> None:
        self.errors.append(item)
        logger.debug("ledger_error_row", path_on_client=item.path_on_client, error=item.error)

    def record(self, item: UploadItem, outcome: UploadOutcome) -> None:
        """Apply the outcome to the item and write it to the matching ledger"""
        item.apply(outcome)

        if isinstance(outcome, Success):
            self.record_success(item)
        elif isinstance(outcome, Failure):
            self.record_failure(item)
        else:
            raise TypeError(f"Unknown outcome: {outcome!r}")

    @property
    def succeeded(self) -> int:
        return self.success.rows_written

    @property
    def failed(self) -> int:
        return self.errors.rows_written

    def close(self) -> None:
        """Flush and close both ledgers"""
        self.success.close()
        self.errors.close()
        logger.info("ledgers_closed",
                    success_path=str(self.success.path), succeeded=self.succeeded,
                    error_path=str(self.errors.path), failed=self.failed)

    def __enter__(self) -> 'ResultSink':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
