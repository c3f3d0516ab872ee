from __future__ import annotations

import uuid

import pytest

from chat_sync.application.exceptions import AttachmentError, ValidationError
from chat_sync.application.policies.validation import (
    assert_attachment_allowed,
    assert_sendable,
    assert_two_parties,
)
from chat_sync.config import Settings
from chat_sync.domain.entities.message import Attachment
from chat_sync.domain.value_objects.enums import ErrorReason


@pytest.fixture
def limits() -> Settings:
    return Settings(MESSAGE_MAX_LENGTH=10, ATTACHMENT_MAX_BYTES=100)


@pytest.mark.parametrize("content", ["", "   ", None])
def test_empty_message_without_attachment_is_rejected(limits, content):
    with pytest.raises(ValidationError) as exc_info:
        assert_sendable(content, None, limits)
    assert exc_info.value.reason == ErrorReason.VALIDATION


def test_attachment_only_message_is_allowed(limits):
    attachment = Attachment(url="https://files/x.png", type="image/png")
    assert assert_sendable("", attachment, limits) == ""


def test_too_long_message_is_rejected(limits):
    with pytest.raises(ValidationError):
        assert_sendable("x" * 11, None, limits)


def test_attachment_without_url_is_rejected(limits):
    with pytest.raises(AttachmentError):
        assert_sendable("hi", Attachment(url="", type="image/png"), limits)


def test_attachment_size_and_type_limits(limits):
    assert_attachment_allowed(100, "image/png", limits)
    with pytest.raises(AttachmentError):
        assert_attachment_allowed(101, "image/png", limits)
    with pytest.raises(AttachmentError):
        assert_attachment_allowed(0, "image/png", limits)
    with pytest.raises(AttachmentError):
        assert_attachment_allowed(10, "application/x-msdownload", limits)


def test_conversation_with_self_is_rejected():
    user = uuid.uuid4()
    with pytest.raises(ValidationError):
        assert_two_parties(user, user)
    assert_two_parties(user, uuid.uuid4())
