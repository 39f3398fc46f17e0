"""
Tests for the manifest reader
"""

import pytest
from chipps_data.manifest import (
    ManifestError,
    ManifestFormatError,
    ManifestNotFoundError,
    open_manifest,
    read_manifest,
)
from chipps_data.models import UploadItem


def write_manifest(path, text, bom=False):
    data = text.encode("utf-8")
    if bom:
        data = b"\xef\xbb\xbf" + data
    path.write_bytes(data)
    return path


class TestManifest:
    """Test reading upload manifests"""

    @pytest.fixture
    def manifest_path(self, tmp_path):
        return write_manifest(
            tmp_path / "files.csv",
            "PathOnClient,Title,FirstPublishLocationId\n"
            "a.txt,Doc A,\n"
            "b.txt,,001000000000001\n"
            "\"dir, with comma/c.txt\",\"Doc \"\"C\"\"\",\n"
        )

    def test_reads_items_in_order(self, manifest_path):
        items = list(read_manifest(manifest_path))

        assert [item.path_on_client for item in items] == ["a.txt", "b.txt", "dir, with comma/c.txt"]
        assert items[0].title == "Doc A"
        assert items[0].first_publish_location_id is None
        assert items[1].title is None
        assert items[1].first_publish_location_id == "001000000000001"
        assert items[2].title == 'Doc "C"'

    def test_items_are_unprocessed(self, manifest_path):
        for item in read_manifest(manifest_path):
            assert item.content_document_id is None
            assert item.error is None
            assert not item.is_processed

    def test_byte_order_mark_is_stripped(self, tmp_path):
        path = write_manifest(tmp_path / "bom.csv", "PathOnClient,Title\na.txt,Doc A\n", bom=True)

        manifest = open_manifest(path)
        items = list(manifest)

        assert manifest.columns == ["PathOnClient", "Title"]
        assert items == [UploadItem(path_on_client="a.txt", title="Doc A")]

    def test_only_path_column_required(self, tmp_path):
        path = write_manifest(tmp_path / "min.csv", "PathOnClient\na.txt\nb.txt\n")

        items = list(read_manifest(path))

        assert [i.path_on_client for i in items] == ["a.txt", "b.txt"]
        assert all(i.title is None for i in items)

    def test_unknown_columns_ignored(self, tmp_path):
        path = write_manifest(tmp_path / "extra.csv", "Owner,PathOnClient,Title\nme,a.txt,A\n")

        items = list(read_manifest(path))

        assert items == [UploadItem(path_on_client="a.txt", title="A")]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ManifestNotFoundError):
            open_manifest(tmp_path / "nope.csv")

    def test_missing_required_column(self, tmp_path):
        path = write_manifest(tmp_path / "bad.csv", "Path,Title\na.txt,A\n")

        with pytest.raises(ManifestFormatError) as exc_info:
            open_manifest(path)

        assert "PathOnClient" in str(exc_info.value)

    def test_empty_file(self, tmp_path):
        path = write_manifest(tmp_path / "empty.csv", "")

        with pytest.raises(ManifestFormatError):
            open_manifest(path)

    def test_header_only(self, tmp_path):
        path = write_manifest(tmp_path / "header.csv", "PathOnClient,Title,FirstPublishLocationId\n")

        assert list(read_manifest(path)) == []

    def test_single_pass(self, manifest_path):
        manifest = open_manifest(manifest_path)
        list(manifest)

        with pytest.raises(ManifestError):
            iter(manifest)

    def test_same_file_read_twice_is_identical(self, manifest_path):
        first = list(read_manifest(manifest_path))
        second = list(read_manifest(manifest_path))

        assert first == second
        assert len(first) == 3

    def test_rows_without_path_are_quarantined(self, tmp_path):
        path = write_manifest(
            tmp_path / "blank.csv",
            "PathOnClient,Title\n"
            "a.txt,A\n"
            ",No path\n"
            "b.txt,B\n"
        )
        rejected = []

        manifest = open_manifest(path, on_invalid=rejected.append)
        items = list(manifest)

        assert [i.path_on_client for i in items] == ["a.txt", "b.txt"]
        assert manifest.rows_read == 3
        assert manifest.rows_rejected == 1
        assert len(rejected) == 1
        assert rejected[0].title == "No path"
        assert "PathOnClient is required" in rejected[0].error

    def test_items_are_produced_lazily(self, tmp_path):
        path = write_manifest(tmp_path / "lazy.csv", "PathOnClient\na.txt\nb.txt\n")
        manifest = open_manifest(path)

        items = iter(manifest)
        first = next(items)

        assert first.path_on_client == "a.txt"
        assert manifest.rows_read == 1

        manifest.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
