"""
chipps-data

Upload local files to a Salesforce org as ContentVersion records, one at a
time or from a CSV manifest with bounded parallelism.
"""

__version__ = "1.0.0"

from .models import UploadItem, Success, Failure, PoolState
from .manifest import open_manifest, read_manifest
from .ledger import ResultSink
from .pool import UploadPool, PoolObserver

__all__ = [
    'UploadItem',
    'Success',
    'Failure',
    'PoolState',
    'open_manifest',
    'read_manifest',
    'ResultSink',
    'UploadPool',
    'PoolObserver',
]
