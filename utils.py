import base64
import random
import re
import time
from typing import Any, Optional

from config import DEFAULT_KEY_PREFIX, HTTP_MAX_ATTEMPTS, PASS_KEY_MAX_NAME_LEN
from models import INLINE_URL_PREFIX

RETRY_STATUSES = (429, 500, 502, 503, 504)


def safe_member_name(name: str, max_len: int = PASS_KEY_MAX_NAME_LEN) -> str:
    """
    Convert a participant name into a storage-safe fragment.
    - Anything outside A-Z/a-z/0-9 becomes '-'
    - Runs of '-' collapse to one
    - Truncated to max_len
    """
    raw = "" if name is None else str(name)
    safe = re.sub(r"[^A-Za-z0-9]", "-", raw)
    safe = re.sub(r"-+", "-", safe)
    return safe[:max_len]


def safe_team_code(team_id: str) -> str:
    raw = "" if team_id is None else str(team_id).strip()
    safe = re.sub(r"[^A-Za-z0-9-]+", "", raw)
    return safe or "TEAM"


def pass_public_id(participant_name: str, team_id: str, prefix: str = DEFAULT_KEY_PREFIX) -> str:
    """
    Deterministic storage key: re-runs for the same member overwrite.

    The name part is cut to PASS_KEY_MAX_NAME_LEN characters, so two members
    of one team whose sanitised names share that prefix get the same key.
    """
    name = safe_member_name(participant_name) or "member"
    return f"{prefix}-{name}-{safe_team_code(team_id)}"


def safe_jpg_filename(public_id: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9_-]+", "", public_id or "").strip("-")
    if not safe:
        safe = "pass"
    return f"{safe}.jpg"


def to_data_uri(buffer: bytes, mime: str = "image/jpeg") -> str:
    return f"{INLINE_URL_PREFIX}{mime};base64,{base64.b64encode(buffer).decode('ascii')}"


def is_inline_url(url: Optional[str]) -> bool:
    return bool(url) and str(url).startswith(INLINE_URL_PREFIX)


def backoff_seconds(attempt: int) -> float:
    return min(6.0, 0.6 * (2**attempt) + random.random() * 0.25)


def request_with_retry(session: Any, method: str, url: str, *, max_attempts: int = HTTP_MAX_ATTEMPTS, **kwargs):
    """
    Issue an HTTP request, retrying transient statuses and connection errors
    with capped exponential backoff.

    Returns the last response once a non-transient status arrives or attempts
    run out. Re-raises the last exception if no response was ever received.
    """
    last_resp = None
    attempts = max(1, int(max_attempts))
    for attempt in range(attempts):
        final = attempt + 1 >= attempts
        try:
            resp = session.request(method, url, **kwargs)
        except Exception:
            if not final:
                time.sleep(backoff_seconds(attempt))
                continue
            if last_resp is not None:
                return last_resp
            raise
        last_resp = resp
        if resp.status_code in RETRY_STATUSES and not final:
            time.sleep(backoff_seconds(attempt))
            continue
        return resp
    return last_resp


def response_summary(resp: Any) -> str:
    ct = (resp.headers.get("Content-Type") or "").split(";")[0].strip() or "unknown"
    snippet = (resp.text or "")[:300]
    return f"status: {resp.status_code}, content-type: {ct}, body: {snippet}"
