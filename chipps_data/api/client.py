"""
Salesforce REST API Client

Calls used by the upload commands:
- ContentVersion upload (multipart)
- SOQL queries
- Org limits (connection check)
"""

import json
import os
from typing import Any, Dict, List, Optional
from dataclasses import dataclass
import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential
import structlog

from ..auth.oauth import SalesforceAuth
from ..models import ContentVersion

logger = structlog.get_logger()


# Only transport failures are retried; an HTTP error response never is
transient_retry = retry(
    retry=retry_if_exception_type((requests.exceptions.ConnectionError, requests.exceptions.Timeout)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
)


@dataclass
class QueryResult:
    """SOQL query result"""
    total_size: int
    done: bool
    records: List[Dict[str, Any]]
    next_records_url: Optional[str] = None


class SalesforceClient:
    """
    Salesforce REST API client.

    One instance (and its HTTP session) is shared by all upload workers.
    """

    API_VERSION = "59.0"

    def __init__(self, auth: SalesforceAuth, api_version: Optional[str] = None, timeout: float = 300):
        self.auth = auth
        self.api_version = (api_version or self.API_VERSION).lstrip('v')
        self.timeout = timeout
        self._session = requests.Session()

    @property
    def base_url(self) -> str:
        """Get base URL for API requests"""
        return f"{self.auth.instance_url}/services/data/v{self.api_version}"

    @property
    def headers(self) -> dict:
        """Get headers for API requests"""
        return self.auth.headers

    # ==================== Files ====================

    def upload_content_version(
        self,
        path_on_client: str,
        title: Optional[str] = None,
        first_publish_location_id: Optional[str] = None
    ) -> ContentVersion:
        """
        Upload a local file as a new ContentVersion.

        Args:
            path_on_client: Local path of the file to upload
            title: Display title (Salesforce derives one from the file name if unset)
            first_publish_location_id: Record or library the file is first shared to

        Returns:
            The created ContentVersion, including its ContentDocumentId
        """
        version_id = self._create_content_version(path_on_client, title, first_publish_location_id)

        record = self.single_record_query(
            f"SELECT Id, ContentDocumentId, Title FROM ContentVersion WHERE Id='{version_id}'"
        )
        return ContentVersion.from_record(record)

    @transient_retry
    def _create_content_version(
        self,
        path_on_client: str,
        title: Optional[str],
        first_publish_location_id: Optional[str]
    ) -> str:
        url = f"{self.base_url}/sobjects/ContentVersion"

        entity = {'PathOnClient': path_on_client}
        if title:
            entity['Title'] = title
        if first_publish_location_id:
            entity['FirstPublishLocationId'] = first_publish_location_id

        # Reopened per attempt so a retry sends the whole file again
        with open(path_on_client, 'rb') as stream:
            files = {
                'entity_content': (None, json.dumps(entity), 'application/json'),
                'VersionData': (os.path.basename(path_on_client), stream, 'application/octet-stream'),
            }
            response = self._session.post(url, headers=self.headers, files=files, timeout=self.timeout)

        if response.status_code == 201:
            result = response.json()
            logger.info("content_version_created", path_on_client=path_on_client, id=result['id'])
            return result['id']
        else:
            self._handle_error(response, "create", "ContentVersion", path_on_client=path_on_client)

    # ==================== Query Operations ====================

    @transient_retry
    def query(self, soql: str) -> QueryResult:
        """
        Execute a SOQL query.

        Args:
            soql: SOQL query string

        Returns:
            QueryResult with records
        """
        url = f"{self.base_url}/query"

        response = self._session.get(url, headers=self.headers, params={'q': soql}, timeout=self.timeout)

        if response.status_code == 200:
            data = response.json()
            return QueryResult(
                total_size=data['totalSize'],
                done=data['done'],
                records=data['records'],
                next_records_url=data.get('nextRecordsUrl')
            )
        else:
            self._handle_error(response, "query", soql=soql)

    def single_record_query(self, soql: str) -> Dict[str, Any]:
        """Execute a query that must match exactly one record"""
        result = self.query(soql)

        if result.total_size != 1 or len(result.records) != 1:
            raise SalesforceAPIError(
                f"Expected 1 record, got {result.total_size}: {soql}",
                error_data={'soql': soql, 'totalSize': result.total_size}
            )
        return result.records[0]

    # ==================== Org ====================

    @transient_retry
    def get_limits(self) -> Dict[str, Any]:
        """Get org limits"""
        url = f"{self.base_url}/limits"

        response = self._session.get(url, headers=self.headers, timeout=self.timeout)

        if response.status_code == 200:
            return response.json()
        else:
            self._handle_error(response, "limits")

    def close(self) -> None:
        self._session.close()

    # ==================== Error Handling ====================

    def _handle_error(self, response: requests.Response, operation: str, sobject: str = None, **kwargs):
        """Handle API errors"""
        try:
            error_data = response.json()
        except ValueError:
            error_data = {'message': response.text}

        logger.error(
            "salesforce_api_error",
            operation=operation,
            sobject=sobject,
            status_code=response.status_code,
            error=error_data,
            **kwargs
        )

        raise SalesforceAPIError(
            f"API Error ({response.status_code}): {_describe(error_data)}",
            status_code=response.status_code,
            error_data=error_data
        )


def _describe(error_data: Any) -> str:
    """Flatten a Salesforce error body ([{errorCode, message}, ...]) into one line"""
    if isinstance(error_data, list):
        parts = []
        for entry in error_data:
            if isinstance(entry, dict) and entry.get('message'):
                code = entry.get('errorCode')
                parts.append(f"{code}: {entry['message']}" if code else entry['message'])
            else:
                parts.append(str(entry))
        return "; ".join(parts)
    return str(error_data)


class SalesforceAPIError(Exception):
    """Salesforce API error"""
    def __init__(self, message: str, status_code: int = None, error_data: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_data = error_data if error_data is not None else {}
