import os
import io
import secrets

import boto3
from botocore.client import Config
from fastapi import HTTPException
from PyPDF2 import PdfReader

S3_ENDPOINT = os.getenv("S3_ENDPOINT")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
S3_BUCKET = os.getenv("S3_BUCKET")
STORAGE_DIR = os.getenv("STORAGE_DIR", "storage")

s3_client = None
if S3_ENDPOINT and S3_ACCESS_KEY and S3_SECRET_KEY and S3_BUCKET:
    s3_client = boto3.client(
        "s3",
        endpoint_url=S3_ENDPOINT,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        config=Config(signature_version="s3v4"),
        region_name=os.getenv("S3_REGION", "us-east-1"),
    )


def save_to_storage(owner: str, filename: str, content: bytes, content_type: str = "application/pdf") -> str:
    key = f"reports/{owner}/{secrets.token_hex(8)}-{filename}"
    if s3_client:
        s3_client.put_object(
            Bucket=S3_BUCKET,
            Key=key,
            Body=content,
            ContentType=content_type,
            ServerSideEncryption="AES256",
        )
        return f"s3://{S3_BUCKET}/{key}"
    # Local fallback for development
    os.makedirs(STORAGE_DIR, exist_ok=True)
    path = os.path.join(STORAGE_DIR, key.replace("/", "_"))
    with open(path, "wb") as f:
        f.write(content)
    return f"local://{path}"


def load_from_storage(path: str) -> bytes:
    if path.startswith("s3://"):
        if not s3_client:
            raise FileNotFoundError("S3 storage is not configured")
        bucket, key = path[len("s3://"):].split("/", 1)
        obj = s3_client.get_object(Bucket=bucket, Key=key)
        return obj["Body"].read()
    if path.startswith("local://"):
        with open(path[len("local://"):], "rb") as f:
            return f.read()
    raise FileNotFoundError(f"Unknown storage path: {path}")


def extract_pdf_text(content: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(content))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Failed to read PDF: {str(e)}")
