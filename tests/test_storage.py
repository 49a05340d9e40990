import io
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException

import storage


def test_local_round_trip(local_storage):
    path = storage.save_to_storage("uid-1", "deck.pdf", b"%PDF-fake")
    assert path.startswith("local://" + str(local_storage))
    assert storage.load_from_storage(path) == b"%PDF-fake"


def test_s3_upload_and_download(monkeypatch):
    s3 = MagicMock()
    s3.get_object.return_value = {"Body": io.BytesIO(b"%PDF-s3")}
    monkeypatch.setattr(storage, "s3_client", s3)
    monkeypatch.setattr(storage, "S3_BUCKET", "ghost-bucket")

    path = storage.save_to_storage("uid-1", "spy.pdf", b"%PDF-s3")

    assert path.startswith("s3://ghost-bucket/reports/uid-1/")
    assert s3.put_object.call_args.kwargs["ServerSideEncryption"] == "AES256"
    assert storage.load_from_storage(path) == b"%PDF-s3"
    assert s3.get_object.call_args.kwargs["Bucket"] == "ghost-bucket"


def test_unknown_or_unconfigured_paths():
    with pytest.raises(FileNotFoundError):
        storage.load_from_storage("ftp://nowhere/file.pdf")
    with pytest.raises(FileNotFoundError):
        storage.load_from_storage("s3://bucket/key.pdf")


def test_extract_pdf_text_rejects_garbage():
    with pytest.raises(HTTPException) as exc:
        storage.extract_pdf_text(b"definitely not a pdf")
    assert exc.value.status_code == 400
