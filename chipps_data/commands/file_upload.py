"""Single file upload."""

import os
from typing import Optional

import structlog

from ..api.client import SalesforceClient
from ..models import ContentVersion
from ._shared import UploadFailure

logger = structlog.get_logger()


def upload_single_file(
    client: SalesforceClient,
    file_path: str,
    title: Optional[str] = None,
    first_publish_location_id: Optional[str] = None
) -> ContentVersion:
    """Upload one file and return the created ContentVersion"""
    if not os.path.isfile(file_path):
        raise UploadFailure(f"File not found: {file_path}", file_path)

    version = client.upload_content_version(file_path, title, first_publish_location_id)
    logger.info("file_uploaded", path_on_client=file_path, id=version.id,
                content_document_id=version.content_document_id)
    return version
