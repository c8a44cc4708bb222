from __future__ import annotations

import pytest

from flecto_manager.core.errors import InvalidDraftArguments
from flecto_manager.domain.types import DraftChangeType, PagePayload, page_mime_type, redirect_http_code
from flecto_manager.services.drafts.common import derive_change_type


@pytest.mark.parametrize(
    ("status", "code"),
    [
        (301, 301),
        (308, 308),
        ("MOVED_PERMANENT", 301),
        ("temporary_redirect", 307),
        ("302", 302),
        (404, 302),
        ("bogus", 302),
        (None, 302),
    ],
)
def test_redirect_http_code(status, code: int) -> None:
    assert redirect_http_code(status) == code


def test_page_mime_type() -> None:
    assert page_mime_type("TEXT_PLAIN") == "text/plain"
    assert page_mime_type("XML") == "application/xml"
    assert page_mime_type("JSON") == "text/plain"
    assert page_mime_type(None) == "text/plain"


def test_page_content_size_counts_utf8_bytes() -> None:
    assert PagePayload("basic", "/x", "héllo", "TEXT_PLAIN").content_size == 6


def test_change_type_follows_arguments() -> None:
    payload = object()
    assert derive_change_type(None, payload) is DraftChangeType.CREATE
    assert derive_change_type(3, payload) is DraftChangeType.UPDATE
    assert derive_change_type(3, None) is DraftChangeType.DELETE
    with pytest.raises(InvalidDraftArguments):
        derive_change_type(None, None)
