"""Avatar uploads to S3."""
from __future__ import annotations

import uuid

import boto3

ALLOWED_IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def image_extension(filename: str) -> str | None:
    if "." not in filename:
        return None
    ext = filename.rsplit(".", 1)[1].lower()
    return ext if ext in ALLOWED_IMAGE_EXTENSIONS else None


def upload_avatar(fileobj, bucket_name: str, owner_key: str, extension: str, content_type: str | None) -> str:
    """Store an avatar image and return its public URL."""
    s3_client = boto3.client("s3")
    s3_key = f"avatars/{owner_key}/{uuid.uuid4()}.{extension}"
    s3_client.upload_fileobj(
        fileobj,
        bucket_name,
        s3_key,
        ExtraArgs={"ContentType": content_type or f"image/{extension}"},
    )
    return f"https://{bucket_name}.s3.amazonaws.com/{s3_key}"
