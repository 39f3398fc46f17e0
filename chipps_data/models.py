"""
Upload Data Model

Items read from a manifest, the outcome of uploading one of them,
and the counters the upload pool exposes while it runs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union


# Manifest / ledger column names
PATH_ON_CLIENT = "PathOnClient"
TITLE = "Title"
FIRST_PUBLISH_LOCATION_ID = "FirstPublishLocationId"
CONTENT_DOCUMENT_ID = "ContentDocumentId"
ERROR = "Error"

ITEM_COLUMNS = [PATH_ON_CLIENT, TITLE, FIRST_PUBLISH_LOCATION_ID]
SUCCESS_COLUMNS = ITEM_COLUMNS + [CONTENT_DOCUMENT_ID]
ERROR_COLUMNS = ITEM_COLUMNS + [ERROR]


@dataclass(frozen=True)
class Success:
    """Upload succeeded"""
    content_document_id: str


@dataclass(frozen=True)
class Failure:
    """Upload failed"""
    error: str


UploadOutcome = Union[Success, Failure]


@dataclass
class UploadItem:
    """One file to upload, and what happened to it"""
    path_on_client: str
    title: Optional[str] = None
    first_publish_location_id: Optional[str] = None
    content_document_id: Optional[str] = None
    error: Optional[str] = None
    line_number: Optional[int] = field(default=None, compare=False)

    @property
    def is_processed(self) -> bool:
        return self.content_document_id is not None or self.error is not None

    def apply(self, outcome: UploadOutcome) -> None:
        """Record the outcome on the item. An item is only ever processed once."""
        if self.is_processed:
            raise ValueError(f"Item already processed: {self.path_on_client}")

        if isinstance(outcome, Success):
            self.content_document_id = outcome.content_document_id
        else:
            self.error = outcome.error

    def mark_succeeded(self, content_document_id: str) -> None:
        self.apply(Success(content_document_id))

    def mark_failed(self, error: str) -> None:
        self.apply(Failure(error))

    def to_row(self) -> Dict[str, str]:
        """Ledger row; unset values are written as empty cells"""
        return {
            PATH_ON_CLIENT: self.path_on_client,
            TITLE: self.title or "",
            FIRST_PUBLISH_LOCATION_ID: self.first_publish_location_id or "",
            CONTENT_DOCUMENT_ID: self.content_document_id or "",
            ERROR: self.error or "",
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any], line_number: Optional[int] = None) -> 'UploadItem':
        """Build an item from a parsed manifest row (blank cells become None)"""
        def cell(name: str) -> Optional[str]:
            value = row.get(name)
            if value is None:
                return None
            value = value.strip()
            return value or None

        return cls(
            path_on_client=cell(PATH_ON_CLIENT) or "",
            title=cell(TITLE),
            first_publish_location_id=cell(FIRST_PUBLISH_LOCATION_ID),
            line_number=line_number,
        )


@dataclass(frozen=True)
class PoolState:
    """Snapshot of the upload pool counters"""
    queued: int = 0
    in_flight: int = 0
    completed: int = 0
    succeeded: int = 0
    failed: int = 0

    @property
    def is_idle(self) -> bool:
        return self.queued == 0 and self.in_flight == 0

    def to_dict(self) -> dict:
        return {
            'queued': self.queued,
            'in_flight': self.in_flight,
            'completed': self.completed,
            'succeeded': self.succeeded,
            'failed': self.failed,
        }


@dataclass
class ContentVersion:
    """A ContentVersion record as returned by the org"""
    id: str
    content_document_id: Optional[str] = None
    title: Optional[str] = None
    record: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'Id': self.id,
            'ContentDocumentId': self.content_document_id,
            'Title': self.title,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'ContentVersion':
        return cls(
            id=record['Id'],
            content_document_id=record.get('ContentDocumentId'),
            title=record.get('Title'),
            record=record,
        )
