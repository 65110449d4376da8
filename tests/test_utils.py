import base64

import pytest

from conftest import FakeResp, FakeSession
from utils import (
    is_inline_url,
    pass_public_id,
    request_with_retry,
    safe_jpg_filename,
    safe_member_name,
    to_data_uri,
)


def test_safe_member_name_basic():
    assert safe_member_name("Kate Marlowe") == "Kate-Marlowe"


def test_safe_member_name_collapses_and_truncates():
    assert safe_member_name("  A/B:C*D?  ") == "-A-B-C-D-"
    assert safe_member_name("Bartholomew Montgomery-Smythe") == "Bartholomew-Montgome"
    assert len(safe_member_name("x" * 50)) == 20


def test_pass_public_id_is_deterministic():
    a = pass_public_id("Kate Marlowe", "GT-2026-4496")
    b = pass_public_id("Kate Marlowe", "GT-2026-4496")
    assert a == b == "Event-Pass-Kate-Marlowe-GT-2026-4496"
    assert pass_public_id("Kate Marlowe", "GT-2026-4496", prefix="Gantavya-Pass").startswith("Gantavya-Pass-")


def test_pass_public_id_differs_per_member_and_team():
    assert pass_public_id("Kate", "T1") != pass_public_id("John", "T1")
    assert pass_public_id("Kate", "T1") != pass_public_id("Kate", "T2")


def test_pass_public_id_empty_name_fallback():
    assert pass_public_id("", "T1") == "Event-Pass-member-T1"


def test_safe_jpg_filename():
    assert safe_jpg_filename("Event-Pass-Kate-T1") == "Event-Pass-Kate-T1.jpg"
    assert safe_jpg_filename("") == "pass.jpg"


def test_data_uri_round_trip():
    buf = b"\xff\xd8\xff\xe0fake-jpeg"
    uri = to_data_uri(buf)
    assert uri.startswith("data:image/jpeg;base64,")
    assert is_inline_url(uri)
    assert base64.b64decode(uri.split(",", 1)[1]) == buf
    assert not is_inline_url("https://res.cloudinary.com/x.jpg")
    assert not is_inline_url(None)


def test_request_with_retry_retries_transient_status():
    session = FakeSession(FakeResp(503), FakeResp(502), FakeResp(200, {"ok": True}))
    resp = request_with_retry(session, "GET", "https://example.test", max_attempts=3)
    assert resp.status_code == 200
    assert len(session.calls) == 3


def test_request_with_retry_returns_last_response_when_exhausted():
    session = FakeSession(FakeResp(503))
    resp = request_with_retry(session, "GET", "https://example.test", max_attempts=2)
    assert resp.status_code == 503
    assert len(session.calls) == 2


def test_request_with_retry_does_not_retry_client_errors():
    session = FakeSession(FakeResp(404), FakeResp(200))
    resp = request_with_retry(session, "GET", "https://example.test", max_attempts=3)
    assert resp.status_code == 404
    assert len(session.calls) == 1


def test_request_with_retry_reraises_connection_errors():
    session = FakeSession(ConnectionError("down"))
    with pytest.raises(ConnectionError):
        request_with_retry(session, "GET", "https://example.test", max_attempts=2)
    assert len(session.calls) == 2


def test_request_with_retry_returns_earlier_response_when_last_attempt_errors():
    session = FakeSession(FakeResp(503), ConnectionError("reset"))
    resp = request_with_retry(session, "GET", "https://example.test", max_attempts=2)
    assert resp.status_code == 503
    assert len(session.calls) == 2


def test_long_names_sharing_a_prefix_share_a_key():
    a = pass_public_id("Bartholomew Montgomery-Smith", "GT-1")
    b = pass_public_id("Bartholomew Montgomery-Jones", "GT-1")
    assert a == b
