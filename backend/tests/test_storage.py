"""Tests for avatar storage, using botocore's Stubber in place of S3."""

import uuid

import boto3
import pytest
from botocore.stub import ANY, Stubber

from askhub.config import Settings
from askhub.services.errors import ActionFailedError, FormValidationError
from askhub.services.storage import AvatarStorage

USER_ID = uuid.UUID("00000000-0000-0000-0000-0000000000aa")


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-2",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def storage(s3_client) -> AvatarStorage:
    settings = Settings(jwt_secret_key="test", aws_s3_bucket="avatars", aws_s3_region="us-east-2")
    return AvatarStorage(settings, client=s3_client)


def test_build_key_uses_user_and_millis():
    key = AvatarStorage.build_key(USER_ID, "Me.PNG", now_ms=1700000000123)

    assert key == f"avatars/{USER_ID}-1700000000123.png"


def test_default_public_url(storage):
    assert storage.public_url("avatars/x.png") == (
        "https://avatars.s3.us-east-2.amazonaws.com/avatars/x.png"
    )


def test_public_base_url_wins(s3_client):
    settings = Settings(
        jwt_secret_key="test",
        aws_s3_endpoint_url="http://localhost:9000",
        avatar_public_base_url="https://cdn.example.com/",
    )
    storage = AvatarStorage(settings, client=s3_client)

    assert storage.public_url("avatars/x.png") == "https://cdn.example.com/avatars/x.png"


@pytest.mark.parametrize("content_type", [None, "application/pdf", "text/plain"])
def test_rejects_non_images(storage, content_type):
    with pytest.raises(FormValidationError) as exc_info:
        storage.validate(content_type, 10)

    assert exc_info.value.errors == {"file": "Please select an image file"}


def test_rejects_files_over_5mb(storage):
    with pytest.raises(FormValidationError) as exc_info:
        storage.validate("image/png", 5 * 1024 * 1024 + 1)

    assert exc_info.value.errors == {"file": "File size must be less than 5MB"}


async def test_upload_puts_object_with_cache_control(storage, s3_client):
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object",
            {},
            {
                "Bucket": "avatars",
                "Key": ANY,
                "Body": b"\x89PNG",
                "ContentType": "image/png",
                "CacheControl": "max-age=3600",
            },
        )

        url = await storage.upload_avatar(USER_ID, "me.png", "image/png", b"\x89PNG")

        stubber.assert_no_pending_responses()

    assert url.startswith(f"https://avatars.s3.us-east-2.amazonaws.com/avatars/{USER_ID}-")
    assert url.endswith(".png")
    assert storage.key_from_url(url).startswith("avatars/")


async def test_upload_failure_is_reported(storage, s3_client):
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied")

        with pytest.raises(ActionFailedError):
            await storage.upload_avatar(USER_ID, "me.png", "image/png", b"\x89PNG")


def test_key_from_foreign_url(storage):
    assert storage.key_from_url("https://elsewhere.example.com/avatars/x.png") is None
