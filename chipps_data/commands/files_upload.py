"""
Batch File Upload

Reads a CSV manifest and uploads every listed file as a ContentVersion,
up to max_parallel_jobs at a time. Results go to success.csv and
error.csv; a failed file is recorded there and does not stop the run.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from rich.console import Console
import structlog

from ..ledger import ResultSink
from ..manifest import open_manifest
from ..pool import PoolObserver, UploadPool
from ..pool.upload_pool import UploadHandler
from ..progress import ProgressReporter

logger = structlog.get_logger()


@dataclass
class BatchUploadResult:
    """Counts and ledger locations of a finished batch upload"""
    total: int
    succeeded: int
    failed: int
    rejected: int
    success_path: Path
    error_path: Path
    elapsed_seconds: float

    @property
    def all_failed(self) -> bool:
        return self.total > 0 and self.succeeded == 0

    def to_dict(self) -> dict:
        return {
            'total': self.total,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'rejected': self.rejected,
            'success_path': str(self.success_path),
            'error_path': str(self.error_path),
            'elapsed_seconds': round(self.elapsed_seconds, 3),
        }


def upload_files(
    file_path: Union[str, Path],
    handler: UploadHandler,
    max_parallel_jobs: int = 1,
    max_pending: Optional[int] = None,
    output_dir: Optional[Union[str, Path]] = None,
    console: Optional[Console] = None,
    observers: Optional[List[PoolObserver]] = None
) -> BatchUploadResult:
    """
    Upload every file listed in the manifest at file_path.

    The manifest header is checked before the ledgers are created, so a bad
    manifest leaves no output behind. Rows without a PathOnClient go straight
    to the error ledger.
    """
    start_time = time.time()

    manifest = open_manifest(file_path)

    with manifest:
        sink = ResultSink.in_directory(output_dir)
        manifest.on_invalid = sink.record_failure

        reporter = ProgressReporter(console) if console is not None else None
        pool_observers = list(observers or [])
        if reporter:
            pool_observers.append(reporter)

        pool = UploadPool(
            handler,
            sink,
            concurrency=max_parallel_jobs,
            max_pending=max_pending,
            observers=pool_observers,
        )

        logger.info("batch_upload_started", manifest=str(manifest.path),
                    max_parallel_jobs=max_parallel_jobs, max_pending=max_pending)

        try:
            if reporter:
                reporter.start()

            for item in manifest:
                pool.submit(item)

            state = pool.join()

        except BaseException:
            # Running uploads must reach the ledgers before they close
            pool.shutdown(cancel_pending=True)
            logger.warning("batch_upload_aborted", completed=pool.state.completed)
            raise

        finally:
            if reporter:
                reporter.stop()
            sink.close()

    result = BatchUploadResult(
        total=manifest.rows_read,
        succeeded=sink.succeeded,
        failed=sink.failed,
        rejected=manifest.rows_rejected,
        success_path=sink.success.path,
        error_path=sink.errors.path,
        elapsed_seconds=time.time() - start_time,
    )

    logger.info("batch_upload_complete", completed=state.completed, **result.to_dict())
    if result.all_failed:
        logger.warning("upload_all_failed", total=result.total, error_path=str(result.error_path))

    return result
