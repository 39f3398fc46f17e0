"""
Salesforce Authentication

Provides an access token and instance URL for REST calls, from one of:
- an access token handed over directly (config or environment)
- an org already logged in with the Salesforce CLI (sf org display)
- the OAuth 2.0 username-password flow, refreshed with a refresh token
"""

import json
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Optional
import requests
import structlog

logger = structlog.get_logger()


@dataclass
class AuthConfig:
    """How to obtain a connection to the target org"""
    username: Optional[str] = None
    password: Optional[str] = None
    security_token: str = ""
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    domain: str = "login"
    instance_url: Optional[str] = None
    access_token: Optional[str] = None
    target_org: Optional[str] = None
    sf_executable: str = "sf"

    @property
    def has_password_flow(self) -> bool:
        return bool(self.username and self.password and self.client_id and self.client_secret)

    @property
    def has_access_token(self) -> bool:
        return bool(self.access_token and self.instance_url)


@dataclass
class TokenInfo:
    """OAuth token information"""
    access_token: str
    instance_url: str
    refresh_token: Optional[str] = None
    token_type: str = "Bearer"
    issued_at: float = 0.0
    expires_in: int = 7200  # Default 2 hours
    username: Optional[str] = None

    @property
    def is_expired(self) -> bool:
        """Check if token is expired (with 5 min buffer)"""
        return time.time() > (self.issued_at + self.expires_in - 300)


class SalesforceAuth:
    """
    Salesforce authentication handler.

    The token is fetched lazily and re-fetched when it is about to expire.
    Safe to share between upload worker threads.
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._token: Optional[TokenInfo] = None
        self._lock = threading.Lock()

    @property
    def login_url(self) -> str:
        """Get appropriate login URL"""
        if self.config.instance_url:
            return self.config.instance_url.rstrip('/')
        return f"https://{self.config.domain}.salesforce.com"

    @property
    def token(self) -> TokenInfo:
        """Get valid access token, refreshing if needed"""
        with self._lock:
            if self._token is None or self._token.is_expired:
                self._token = self._authenticate()
            return self._token

    @property
    def access_token(self) -> str:
        return self.token.access_token

    @property
    def instance_url(self) -> str:
        return self.token.instance_url.rstrip('/')

    @property
    def username(self) -> Optional[str]:
        return self.token.username or self.config.username

    @property
    def headers(self) -> dict:
        """Get authorization headers for API requests"""
        return {'Authorization': f'Bearer {self.access_token}'}

    def authenticate(self) -> TokenInfo:
        """Fetch a fresh token regardless of the cached one"""
        with self._lock:
            self._token = self._authenticate()
            return self._token

    def _authenticate(self) -> TokenInfo:
        if self.config.has_access_token:
            logger.debug("using_access_token", instance_url=self.config.instance_url)
            return TokenInfo(
                access_token=self.config.access_token,
                instance_url=self.config.instance_url,
                issued_at=time.time(),
                # Lifetime unknown; the org rejects it once it is stale
                expires_in=365 * 24 * 3600,
                username=self.config.username,
            )

        if self._token and self._token.refresh_token:
            try:
                return self._refresh_token()
            except AuthenticationError as e:
                logger.warning("refresh_token_failed", error=str(e))

        if self.config.has_password_flow:
            return self._username_password_flow()

        return self._sf_cli_flow()

    # ==================== Salesforce CLI ====================

    def _sf_cli_flow(self) -> TokenInfo:
        """Read the token of an org logged in with the sf CLI"""
        executable = shutil.which(self.config.sf_executable)
        if not executable:
            raise ConnectionUnavailableError(
                f"No credentials configured and '{self.config.sf_executable}' CLI not found on PATH"
            )

        command = [executable, "org", "display", "--json"]
        if self.config.target_org:
            command += ["--target-org", self.config.target_org]

        logger.info("loading_sf_cli_auth", target_org=self.config.target_org)

        try:
            completed = subprocess.run(command, capture_output=True, text=True, timeout=120)
        except (OSError, subprocess.SubprocessError) as e:
            raise ConnectionUnavailableError(f"Failed to run sf CLI: {e}") from e

        try:
            payload = json.loads(completed.stdout or "{}")
        except ValueError as e:
            raise ConnectionUnavailableError(f"Unexpected sf CLI output: {completed.stdout[:200]}") from e

        result = payload.get("result") or {}
        if completed.returncode != 0 or not result.get("accessToken"):
            message = payload.get("message") or completed.stderr.strip() or "no access token returned"
            raise ConnectionUnavailableError(
                f"Unable to get a connection to target org {self.config.target_org or '(default)'}: {message}"
            )

        token = TokenInfo(
            access_token=result["accessToken"],
            instance_url=result["instanceUrl"],
            issued_at=time.time(),
            username=result.get("username"),
        )
        logger.info("sf_cli_auth_loaded", username=token.username, instance_url=token.instance_url)
        return token

    # ==================== OAuth ====================

    def _username_password_flow(self) -> TokenInfo:
        """Authenticate using username-password flow"""
        token_url = f"{self.login_url}/services/oauth2/token"

        payload = {
            'grant_type': 'password',
            'client_id': self.config.client_id,
            'client_secret': self.config.client_secret,
            'username': self.config.username,
            'password': f"{self.config.password}{self.config.security_token}"
        }

        logger.info("authenticating_with_salesforce", username=self.config.username)

        try:
            response = requests.post(token_url, data=payload, timeout=60)
        except requests.RequestException as e:
            raise ConnectionUnavailableError(f"Login request failed: {e}") from e

        if response.status_code != 200:
            error = _error_body(response)
            logger.error("authentication_failed", error=error)
            detail = error.get('error_description', error) if isinstance(error, dict) else error
            raise AuthenticationError(f"Authentication failed: {detail}")

        data = response.json()
        token = TokenInfo(
            access_token=data['access_token'],
            refresh_token=data.get('refresh_token'),
            instance_url=data['instance_url'],
            token_type=data.get('token_type', 'Bearer'),
            issued_at=float(data['issued_at']) / 1000 if data.get('issued_at') else time.time(),
            username=self.config.username,
        )

        logger.info("authentication_successful", instance_url=token.instance_url)
        return token

    def _refresh_token(self) -> TokenInfo:
        """Refresh access token using refresh token"""
        token_url = f"{self._token.instance_url}/services/oauth2/token"

        payload = {
            'grant_type': 'refresh_token',
            'client_id': self.config.client_id,
            'client_secret': self.config.client_secret,
            'refresh_token': self._token.refresh_token
        }

        try:
            response = requests.post(token_url, data=payload, timeout=60)
        except requests.RequestException as e:
            raise AuthenticationError(f"Token refresh failed: {e}") from e

        if response.status_code != 200:
            raise AuthenticationError(f"Token refresh failed: {_error_body(response)}")

        data = response.json()
        token = TokenInfo(
            access_token=data['access_token'],
            refresh_token=self._token.refresh_token,  # Keep existing refresh token
            instance_url=data['instance_url'],
            token_type=data.get('token_type', 'Bearer'),
            issued_at=time.time(),
            username=self._token.username,
        )

        logger.info("token_refreshed")
        return token


def _error_body(response: requests.Response) -> dict:
    try:
        return response.json()
    except ValueError:
        return {'message': response.text}


class ConnectionUnavailableError(Exception):
    """No usable connection to the target org"""
    pass


class AuthenticationError(ConnectionUnavailableError):
    """Raised when authentication fails"""
    pass
