"""
Tests for target org authentication
"""

import json
import subprocess
import time
import pytest
from unittest.mock import MagicMock, patch

from chipps_data.auth import AuthConfig, AuthenticationError, ConnectionUnavailableError, SalesforceAuth
from chipps_data.auth.oauth import TokenInfo


def completed(stdout, returncode=0, stderr=""):
    return subprocess.CompletedProcess(args=["sf"], returncode=returncode, stdout=stdout, stderr=stderr)


class TestSalesforceAuth:
    """Test the ways a connection is obtained"""

    def test_access_token(self):
        auth = SalesforceAuth(AuthConfig(access_token="00Dabc", instance_url="https://x.my.salesforce.com/"))

        assert auth.headers == {"Authorization": "Bearer 00Dabc"}
        assert auth.instance_url == "https://x.my.salesforce.com"

    @patch("chipps_data.auth.oauth.subprocess.run")
    @patch("chipps_data.auth.oauth.shutil.which", return_value="/usr/bin/sf")
    def test_sf_cli(self, which, run):
        run.return_value = completed(json.dumps({
            "status": 0,
            "result": {
                "accessToken": "00Dsf",
                "instanceUrl": "https://sf.my.salesforce.com",
                "username": "admin@example.com",
            },
        }))

        auth = SalesforceAuth(AuthConfig(target_org="my-sandbox"))

        assert auth.access_token == "00Dsf"
        assert auth.username == "admin@example.com"
        command = run.call_args[0][0]
        assert command == ["/usr/bin/sf", "org", "display", "--json", "--target-org", "my-sandbox"]

    @patch("chipps_data.auth.oauth.subprocess.run")
    @patch("chipps_data.auth.oauth.shutil.which", return_value="/usr/bin/sf")
    def test_sf_cli_unknown_org(self, which, run):
        run.return_value = completed(
            json.dumps({"status": 1, "name": "NamedOrgNotFoundError", "message": "No authorization information found for nope."}),
            returncode=1,
        )

        with pytest.raises(ConnectionUnavailableError) as exc_info:
            SalesforceAuth(AuthConfig(target_org="nope")).token

        assert "No authorization information found" in str(exc_info.value)

    @patch("chipps_data.auth.oauth.shutil.which", return_value=None)
    def test_nothing_configured(self, which):
        with pytest.raises(ConnectionUnavailableError):
            SalesforceAuth(AuthConfig()).token

    @patch("chipps_data.auth.oauth.requests.post")
    def test_username_password_flow(self, post):
        post.return_value = MagicMock(status_code=200)
        post.return_value.json.return_value = {
            "access_token": "00Dpw",
            "instance_url": "https://pw.my.salesforce.com",
            "token_type": "Bearer",
            "issued_at": str(int(time.time() * 1000)),
        }

        auth = SalesforceAuth(AuthConfig(
            username="u@example.com", password="pw", security_token="TOK",
            client_id="cid", client_secret="secret", domain="test",
        ))

        assert auth.access_token == "00Dpw"
        url = post.call_args[0][0]
        assert url == "https://test.salesforce.com/services/oauth2/token"
        assert post.call_args[1]["data"]["password"] == "pwTOK"

    @patch("chipps_data.auth.oauth.requests.post")
    def test_username_password_rejected(self, post):
        post.return_value = MagicMock(status_code=400)
        post.return_value.json.return_value = {
            "error": "invalid_grant", "error_description": "authentication failure",
        }

        auth = SalesforceAuth(AuthConfig(
            username="u@example.com", password="bad", client_id="cid", client_secret="secret",
        ))

        with pytest.raises(AuthenticationError) as exc_info:
            auth.token

        assert "authentication failure" in str(exc_info.value)
        assert isinstance(exc_info.value, ConnectionUnavailableError)

    @patch("chipps_data.auth.oauth.requests.post")
    def test_expired_token_is_refreshed(self, post):
        post.return_value = MagicMock(status_code=200)
        post.return_value.json.return_value = {
            "access_token": "00Dnew",
            "instance_url": "https://pw.my.salesforce.com",
        }

        auth = SalesforceAuth(AuthConfig(client_id="cid", client_secret="secret"))
        auth._token = TokenInfo(
            access_token="00Dold",
            instance_url="https://pw.my.salesforce.com",
            refresh_token="refresh",
            issued_at=time.time() - 10000,
        )

        assert auth.access_token == "00Dnew"
        assert post.call_args[1]["data"]["grant_type"] == "refresh_token"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
