import pytest

from app.murrs.storage import LocalStorage, S3Storage, StorageError, storage_from_config


def test_local_put_open_delete(tmp_path):
    storage = LocalStorage(root=tmp_path)
    storage.put_bytes("papers/7/thesis.pdf", b"%PDF-1.4")

    assert storage.exists("papers/7/thesis.pdf")
    with storage.open("papers/7/thesis.pdf") as f:
        assert f.read() == b"%PDF-1.4"
    # No temp files left next to the stored object.
    assert [p.name for p in (tmp_path / "papers" / "7").iterdir()] == ["thesis.pdf"]

    storage.put_bytes("papers/7/thesis.pdf", b"%PDF-1.5")
    with storage.open("papers/7/thesis.pdf") as f:
        assert f.read() == b"%PDF-1.5"

    storage.delete("papers/7/thesis.pdf")
    assert not storage.exists("papers/7/thesis.pdf")
    storage.delete("papers/7/thesis.pdf")


def test_local_missing_object(tmp_path):
    with pytest.raises(StorageError):
        LocalStorage(root=tmp_path).open("papers/1/none.pdf")


@pytest.mark.parametrize("key", ["../etc/passwd", "papers/../../x", "", "papers//x.pdf"])
def test_keys_cannot_escape_root(tmp_path, key):
    with pytest.raises(StorageError):
        LocalStorage(root=tmp_path).put_bytes(key, b"x")


def test_storage_from_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert storage_from_config({"STORAGE_ROOT": str(tmp_path / "blobs")}) == LocalStorage(root=tmp_path / "blobs")
    assert storage_from_config({}).root.resolve() == (tmp_path / "storage").resolve()

    s3 = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": "papers", "S3_ENDPOINT": "nyc3.example.com"})
    assert isinstance(s3, S3Storage)
    assert s3.bucket == "papers"

    with pytest.raises(StorageError):
        storage_from_config({"STORAGE_BACKEND": "ftp"})
