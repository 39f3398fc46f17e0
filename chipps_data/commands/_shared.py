"""Shared pieces of the upload commands."""

import os
from typing import Optional

import requests
import structlog

from ..api.client import SalesforceAPIError, SalesforceClient
from ..auth.oauth import AuthConfig, ConnectionUnavailableError, SalesforceAuth
from ..models import Success, UploadItem, UploadOutcome

logger = structlog.get_logger()


def connect(auth_config: AuthConfig, api_version: Optional[str] = None) -> SalesforceClient:
    """
    Authenticate to the target org.

    Raises ConnectionUnavailableError before any work starts if no token
    can be obtained or the org rejects it.
    """
    auth = SalesforceAuth(auth_config)
    token = auth.authenticate()

    if not token.access_token or not token.instance_url:
        raise ConnectionUnavailableError("Target org connection has no access token")

    client = SalesforceClient(auth, api_version=api_version)

    # Verify connection
    try:
        limits = client.get_limits()
    except (SalesforceAPIError, requests.RequestException) as e:
        client.close()
        raise ConnectionUnavailableError(f"Target org {token.instance_url} rejected the connection: {e}") from e

    daily = limits.get("DailyApiRequests", {})
    logger.info("org_connected",
                instance_url=token.instance_url,
                username=token.username,
                api_remaining=daily.get('Remaining'),
                api_max=daily.get('Max'))
    return client


def upload_file(
    client: SalesforceClient,
    path_on_client: str,
    title: Optional[str] = None,
    first_publish_location_id: Optional[str] = None
) -> UploadOutcome:
    """
    Upload one local file as a ContentVersion.

    Returns Success with the ContentDocumentId; any problem is raised.
    """
    if not os.path.isfile(path_on_client):
        raise UploadFailure(f"File not found: {path_on_client}", path_on_client)

    version = client.upload_content_version(path_on_client, title, first_publish_location_id)

    if not version.content_document_id:
        raise UploadFailure(f"ContentVersion {version.id} has no ContentDocumentId", path_on_client)

    return Success(version.content_document_id)


class ContentVersionUploader:
    """Upload pool handler: one ContentVersion per item"""

    def __init__(self, client: SalesforceClient):
        self.client = client

    def __call__(self, item: UploadItem) -> UploadOutcome:
        return upload_file(
            self.client,
            item.path_on_client,
            item.title,
            item.first_publish_location_id,
        )


class UploadFailure(Exception):
    """A single file could not be uploaded"""
    def __init__(self, message: str, path_on_client: Optional[str] = None):
        super().__init__(message)
        self.path_on_client = path_on_client
