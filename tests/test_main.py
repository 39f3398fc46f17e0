"""
Tests for the command line entry point
"""

import json
import pytest
from unittest.mock import MagicMock, patch

from chipps_data.auth import ConnectionUnavailableError
from chipps_data.main import build_parser, main
from chipps_data.models import ContentVersion


class TestMain:
    """Test the chipps-data commands end to end with a fake org"""

    @pytest.fixture(autouse=True)
    def isolated(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HOME", str(tmp_path / "home"))
        monkeypatch.chdir(tmp_path)

    @pytest.fixture
    def client(self):
        c = MagicMock()
        c.upload_content_version.side_effect = lambda path, title=None, fpl=None: ContentVersion(
            id="068" + path[-5:], content_document_id="069" + path[-5:], title=title
        )
        return c

    @pytest.fixture
    def manifest(self, tmp_path):
        for name in ("one.txt", "two.txt"):
            (tmp_path / name).write_text(name)
        path = tmp_path / "files.csv"
        path.write_text(
            "PathOnClient,Title,FirstPublishLocationId\n"
            f"{tmp_path / 'one.txt'},One,\n"
            f"{tmp_path / 'two.txt'},Two,\n"
            f"{tmp_path / 'three.txt'},Three,\n"
        )
        return path

    def test_files_upload(self, client, manifest, tmp_path, capsys):
        with patch("chipps_data.main.connect", return_value=client) as connect:
            main(["files", "upload", "--file-path", str(manifest), "--max-parallel-jobs", "2",
                  "--target-org", "my-org"])

        auth_config = connect.call_args[0][0]
        assert auth_config.target_org == "my-org"

        success = (tmp_path / "success.csv").read_text().splitlines()
        errors = (tmp_path / "error.csv").read_text().splitlines()
        assert len(success) == 3
        assert len(errors) == 2
        assert "File not found" in errors[1]

        out = capsys.readouterr().out
        assert "Succeeded: 2" in out
        assert "Failed:    1" in out
        client.close.assert_called_once_with()

    def test_files_upload_json(self, client, manifest, tmp_path, capsys):
        output_dir = tmp_path / "results"

        with patch("chipps_data.main.connect", return_value=client):
            main(["files", "upload", "-f", str(manifest), "--output-dir", str(output_dir), "--json"])

        summary = json.loads(capsys.readouterr().out)
        assert summary["result"]["total"] == 3
        assert summary["result"]["succeeded"] == 2
        assert summary["result"]["failed"] == 1
        assert (output_dir / "success.csv").exists()

    def test_all_failed_exits_zero(self, manifest, tmp_path):
        client = MagicMock()
        client.upload_content_version.side_effect = RuntimeError("INVALID_SESSION_ID")

        with patch("chipps_data.main.connect", return_value=client):
            main(["files", "upload", "--file-path", str(manifest)])

        errors = (tmp_path / "error.csv").read_text().splitlines()
        assert len(errors) == 4

    def test_no_connection(self, manifest, tmp_path):
        with patch("chipps_data.main.connect", side_effect=ConnectionUnavailableError("no auth")):
            with pytest.raises(SystemExit) as exc_info:
                main(["files", "upload", "--file-path", str(manifest)])

        assert exc_info.value.code == 1
        assert not (tmp_path / "success.csv").exists()

    def test_bad_manifest(self, client, tmp_path):
        bad = tmp_path / "bad.csv"
        bad.write_text("Name\nx\n")

        with patch("chipps_data.main.connect", return_value=client):
            with pytest.raises(SystemExit) as exc_info:
                main(["files", "upload", "--file-path", str(bad)])

        assert exc_info.value.code == 1
        assert not (tmp_path / "error.csv").exists()
        client.upload_content_version.assert_not_called()
        client.close.assert_called_once_with()

    def test_file_upload(self, client, tmp_path, capsys):
        path = tmp_path / "one.txt"
        path.write_text("1")

        with patch("chipps_data.main.connect", return_value=client):
            main(["file", "upload", "--file-path", str(path), "--title", "One",
                  "--first-publish-location-id", "001A", "--json"])

        client.upload_content_version.assert_called_once_with(str(path), "One", "001A")
        result = json.loads(capsys.readouterr().out)["result"]
        assert result["Id"] == "068e.txt"
        assert result["ContentDocumentId"] == "069e.txt"
        client.close.assert_called_once_with()

    def test_file_upload_missing_file(self, client, tmp_path):
        with patch("chipps_data.main.connect", return_value=client):
            with pytest.raises(SystemExit) as exc_info:
                main(["file", "upload", "--file-path", str(tmp_path / "nope.txt")])

        assert exc_info.value.code == 1

    def test_invalid_parallel_jobs(self, manifest):
        with pytest.raises(SystemExit) as exc_info:
            main(["files", "upload", "--file-path", str(manifest), "--max-parallel-jobs", "0"])

        assert exc_info.value.code == 2

    def test_file_path_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["files", "upload"])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
