"""
Team/member data stores.

The orchestrator talks to a store through six calls:
get_team_with_members, update_member_pass_url, mark_team_passes_generated,
list_pending_teams, find_member_for_scan, mark_attendance.

SupabaseTeamStore is the production store (PostgREST over requests).
InMemoryTeamStore backs tests and the spreadsheet flow (load_team_store);
pandas is imported only inside the spreadsheet helpers.
"""

from __future__ import annotations

import copy
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import DEFAULT_BATCH_LIMIT, HTTP_MAX_ATTEMPTS, HTTP_TIMEOUT_S
from errors import StoreError, TeamNotFoundError
from models import Event, Member, Team
from utils import request_with_retry, response_summary

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_ID_PREFIX_RE = re.compile(r"^[0-9a-fA-F]{8}$")

TEAM_SELECT = (
    "*,"
    "events(id,name,slug,start_time,venue),"
    "team_members(id,member_name,member_email,member_contact,role,pass_url,is_present,attendance_marked_at)"
)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None or (isinstance(v, float) and str(v) == "nan"):
        return False
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on", "paid"}


def _to_str(v: Any) -> Optional[str]:
    if v is None or (isinstance(v, float) and str(v) == "nan"):
        return None
    s = str(v).strip()
    if not s or s.lower() == "nan":
        return None
    return s


def _member_from_row(row: Dict[str, Any], team_id: str) -> Member:
    return Member(
        id=str(row.get("id")),
        team_id=str(row.get("team_id") or team_id),
        name=_to_str(row.get("member_name")) or "",
        email=_to_str(row.get("member_email")) or "",
        contact=_to_str(row.get("member_contact")) or "",
        role=_to_str(row.get("role")) or "member",
        pass_url=_to_str(row.get("pass_url")),
        is_present=_to_bool(row.get("is_present")),
        attendance_marked_at=_to_str(row.get("attendance_marked_at")),
    )


def team_from_row(row: Dict[str, Any]) -> Team:
    """Build a Team from a `teams` row with embedded `events` and `team_members`."""
    team_id = str(row.get("id"))
    event_row = row.get("events")
    if isinstance(event_row, list):
        event_row = event_row[0] if event_row else None
    event = None
    if isinstance(event_row, dict) and event_row.get("name"):
        event = Event(
            name=str(event_row["name"]),
            id=_to_str(event_row.get("id")),
            slug=_to_str(event_row.get("slug")),
            venue=_to_str(event_row.get("venue")),
            start_time=_to_str(event_row.get("start_time")),
        )
    members = [_member_from_row(m, team_id) for m in (row.get("team_members") or [])]
    return Team(
        id=team_id,
        team_name=_to_str(row.get("team_name")) or "",
        team_code=_to_str(row.get("team_code")),
        college_name=_to_str(row.get("college_name")),
        captain_name=_to_str(row.get("captain_name")),
        captain_email=_to_str(row.get("captain_email")),
        captain_phone=_to_str(row.get("captain_phone")),
        transaction_id=_to_str(row.get("transaction_id")),
        has_paid=_to_bool(row.get("has_paid")),
        passes_generated=_to_bool(row.get("passes_generated")),
        event=event,
        members=members,
    )


def _match_member(team: Team, email: str) -> Optional[Member]:
    wanted = (email or "").strip().lower()
    for m in team.members:
        if (m.email or "").strip().lower() == wanted:
            return m
    return None


class SupabaseTeamStore:
    """Store backed by a Supabase project's REST (PostgREST) endpoint."""

    def __init__(self, url: str, service_key: str, session: Any = None, max_attempts: int = HTTP_MAX_ATTEMPTS):
        url = (url or "").strip().rstrip("/")
        service_key = (service_key or "").strip()
        if not url or not service_key:
            raise ValueError("Supabase store requires url and service_key.")
        self.base_url = f"{url}/rest/v1"
        self.headers = {
            "apikey": service_key,
            "Authorization": f"Bearer {service_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        self.max_attempts = max_attempts
        if session is None:
            import requests

            session = requests.Session()
        self.session = session

    def _call(self, method: str, table: str, *, params: Any = None, json: Any = None, prefer: Optional[str] = None):
        headers = dict(self.headers)
        if prefer:
            headers["Prefer"] = prefer
        endpoint = f"{self.base_url}/{table}"
        try:
            resp = request_with_retry(
                self.session,
                method,
                endpoint,
                max_attempts=self.max_attempts,
                params=params,
                json=json,
                headers=headers,
                timeout=(10, HTTP_TIMEOUT_S),
            )
        except Exception as e:
            raise StoreError(f"Supabase request failed ({method} {table}): {e}") from e
        if resp.status_code >= 300:
            raise StoreError(f"Supabase {method} {table} failed ({response_summary(resp)})")
        if method == "GET":
            try:
                data = resp.json()
            except ValueError as e:
                raise StoreError(f"Supabase response was not valid JSON ({response_summary(resp)})") from e
            if not isinstance(data, list):
                raise StoreError(f"Unexpected Supabase response type: {type(data).__name__}")
            return data
        return None

    def _fetch_teams(self, filters: Iterable[Tuple[str, str]], limit: Optional[int] = None) -> List[Team]:
        params: List[Tuple[str, str]] = [("select", TEAM_SELECT), *filters]
        if limit is not None:
            params.append(("limit", str(int(limit))))
        return [team_from_row(r) for r in self._call("GET", "teams", params=params)]

    def get_team_with_members(self, team_id: str) -> Team:
        teams = self._fetch_teams([("id", f"eq.{team_id}")], limit=1)
        if not teams:
            raise TeamNotFoundError(f"Team not found: {team_id}")
        return teams[0]

    def list_pending_teams(self, limit: int = DEFAULT_BATCH_LIMIT) -> List[Team]:
        return self._fetch_teams(
            [("has_paid", "eq.true"), ("passes_generated", "eq.false"), ("order", "created_at.asc")],
            limit=limit,
        )

    def update_member_pass_url(self, member_id: str, url: str) -> None:
        self._call("PATCH", "team_members", params={"id": f"eq.{member_id}"},
                   json={"pass_url": url}, prefer="return=minimal")

    def mark_team_passes_generated(self, team_id: str) -> None:
        self._call("PATCH", "teams", params={"id": f"eq.{team_id}"},
                   json={"passes_generated": True}, prefer="return=minimal")

    def find_member_for_scan(self, team_ref: str, email: str) -> Optional[Tuple[Team, Member]]:
        """Resolve a scanned (team reference, email) pair to a team member."""
        ref = (team_ref or "").strip()
        if _UUID_RE.match(ref):
            filters = [("id", f"eq.{ref.lower()}")]
        elif _ID_PREFIX_RE.match(ref):
            # Display id of a team without a code: first 8 chars of its uuid
            p = ref.lower()
            filters = [
                ("id", f"gte.{p}-0000-0000-0000-000000000000"),
                ("id", f"lte.{p}-ffff-ffff-ffff-ffffffffffff"),
            ]
        else:
            filters = [("team_code", f"eq.{ref}")]
        for team in self._fetch_teams(filters, limit=5):
            member = _match_member(team, email)
            if member is not None:
                return team, member
        return None

    def mark_attendance(self, member_id: str, is_present: bool = True) -> str:
        marked_at = _utc_now()
        self._call("PATCH", "team_members", params={"id": f"eq.{member_id}"},
                   json={"is_present": bool(is_present), "attendance_marked_at": marked_at},
                   prefer="return=minimal")
        return marked_at


class InMemoryTeamStore:
    """Dict-backed store. Reads hand out copies; only store calls mutate state."""

    def __init__(self, teams: Iterable[Team] = ()):
        self.teams: Dict[str, Team] = {t.id: t for t in teams}

    def add_team(self, team: Team) -> None:
        self.teams[team.id] = team

    def _member(self, member_id: str) -> Member:
        for team in self.teams.values():
            for m in team.members:
                if m.id == member_id:
                    return m
        raise StoreError(f"Member not found: {member_id}")

    def get_team_with_members(self, team_id: str) -> Team:
        team = self.teams.get(str(team_id))
        if team is None:
            raise TeamNotFoundError(f"Team not found: {team_id}")
        return copy.deepcopy(team)

    def list_pending_teams(self, limit: int = DEFAULT_BATCH_LIMIT) -> List[Team]:
        pending = [t for t in self.teams.values() if t.has_paid and not t.passes_generated]
        return [copy.deepcopy(t) for t in pending[: max(0, int(limit))]]

    def update_member_pass_url(self, member_id: str, url: str) -> None:
        self._member(member_id).pass_url = url

    def mark_team_passes_generated(self, team_id: str) -> None:
        team = self.teams.get(str(team_id))
        if team is None:
            raise TeamNotFoundError(f"Team not found: {team_id}")
        team.passes_generated = True

    def find_member_for_scan(self, team_ref: str, email: str) -> Optional[Tuple[Team, Member]]:
        ref = (team_ref or "").strip()
        if not ref:
            return None
        for team in self.teams.values():
            id_match = team.id == ref or (len(ref) >= 8 and team.id.lower().startswith(ref.lower()))
            if id_match or (team.team_code and team.team_code == ref):
                member = _match_member(team, email)
                if member is not None:
                    return copy.deepcopy(team), copy.deepcopy(member)
        return None

    def mark_attendance(self, member_id: str, is_present: bool = True) -> str:
        member = self._member(member_id)
        member.is_present = bool(is_present)
        member.attendance_marked_at = _utc_now()
        return member.attendance_marked_at

    def to_dataframes(self):
        """Teams and members as two DataFrames (same columns load_team_store reads)."""
        import pandas as pd

        team_rows = []
        member_rows = []
        for t in self.teams.values():
            team_rows.append(
                {
                    "id": t.id,
                    "team_code": t.team_code or "",
                    "team_name": t.team_name,
                    "college_name": t.college_name or "",
                    "captain_name": t.captain_name or "",
                    "captain_email": t.captain_email or "",
                    "captain_phone": t.captain_phone or "",
                    "transaction_id": t.transaction_id or "",
                    "has_paid": t.has_paid,
                    "passes_generated": t.passes_generated,
                    "event_name": t.event.name if t.event else "",
                    "event_venue": (t.event.venue or "") if t.event else "",
                }
            )
            for m in t.members:
                member_rows.append(
                    {
                        "id": m.id,
                        "team_id": t.id,
                        "member_name": m.name,
                        "member_email": m.email,
                        "member_contact": m.contact,
                        "role": m.role,
                        "pass_url": m.pass_url or "",
                        "is_present": m.is_present,
                        "attendance_marked_at": m.attendance_marked_at or "",
                    }
                )
        return pd.DataFrame(team_rows), pd.DataFrame(member_rows)

    def save(self, teams_path: str, members_path: str) -> None:
        teams_df, members_df = self.to_dataframes()
        for df, path in ((teams_df, teams_path), (members_df, members_path)):
            if Path(path).suffix.lower() in (".xlsx", ".xls"):
                df.to_excel(path, index=False)
            else:
                df.to_csv(path, index=False)


def _find_column(df: Any, exact: Optional[str], *subs) -> Optional[str]:
    """Find column by exact name or by substrings (all must match, case-insensitive)."""
    df_cols = [str(c).strip() for c in df.columns]
    if exact and exact in df_cols:
        return exact
    low = exact.lower() if exact else ""
    for c in df.columns:
        cs = str(c).strip()
        if exact and cs.lower() == low:
            return c
        if subs and all(s.lower() in cs.lower() for s in subs):
            return c
    return None


def _read_table(path: str) -> Any:
    import pandas as pd

    suf = Path(path).suffix.lower()
    if suf in (".xlsx", ".xls"):
        try:
            df = pd.read_excel(path, dtype=str)
        except ImportError as e:
            if "openpyxl" in str(e).lower():
                raise ImportError("Reading Excel requires openpyxl. Install it with:\n  pip install openpyxl") from e
            raise
    else:
        df = pd.read_csv(path, dtype=str)
    df.columns = [str(c).strip() for c in df.columns]
    return df


# Canonical column -> (exact names to try, substring fallbacks)
_TEAM_COLUMNS = {
    "id": (("id", "team_id", "Team UUID"), ()),
    "team_code": (("team_code", "Team Code", "Team ID"), ("code",)),
    "team_name": (("team_name", "Team Name"), ("team", "name")),
    "college_name": (("college_name", "College Name", "College"), ("college",)),
    "captain_name": (("captain_name", "Captain Name"), ("captain", "name")),
    "captain_email": (("captain_email", "Captain Email"), ("captain", "email")),
    "captain_phone": (("captain_phone", "Captain Phone"), ("captain", "phone")),
    "transaction_id": (("transaction_id", "Transaction ID"), ("transaction",)),
    "has_paid": (("has_paid", "Has Paid", "Paid"), ("paid",)),
    "passes_generated": (("passes_generated", "Passes Generated"), ("passes",)),
    "event_name": (("event_name", "Event Name", "Event"), ("event", "name")),
    "event_venue": (("event_venue", "Venue"), ("venue",)),
}
_MEMBER_COLUMNS = {
    "id": (("id", "member_id", "Member ID"), ()),
    "team_id": (("team_id", "Team UUID"), ("team",)),
    "member_name": (("member_name", "Name", "Full Name"), ("name",)),
    "member_email": (("member_email", "Email"), ("email",)),
    "member_contact": (("member_contact", "Phone", "Contact"), ("contact",)),
    "role": (("role", "Role"), ("role",)),
    "pass_url": (("pass_url", "Pass URL"), ("pass",)),
    "is_present": (("is_present", "Present"), ("present",)),
    "attendance_marked_at": (("attendance_marked_at",), ("attendance",)),
}


def _canonical_rows(df: Any, columns: Dict[str, Tuple[Tuple[str, ...], Tuple[str, ...]]]) -> List[Dict[str, Any]]:
    mapping = {}
    for canon, (exacts, subs) in columns.items():
        col = None
        for exact in exacts:
            col = _find_column(df, exact)
            if col:
                break
        if col is None and subs:
            col = _find_column(df, None, *subs)
        if col is not None:
            mapping[canon] = col
    rows = []
    for _, r in df.iterrows():
        rows.append({canon: r.get(col) for canon, col in mapping.items()})
    return rows


def load_team_store(teams_path: str, members_path: str) -> InMemoryTeamStore:
    """
    Load teams and members from CSV/Excel exports into an InMemoryTeamStore.

    Teams need an id and team name; members need an id, team id, name and
    email. Rows missing those are skipped (counted in the log).
    """
    teams_df = _read_table(teams_path)
    members_df = _read_table(members_path)

    members_by_team: Dict[str, List[Dict[str, Any]]] = {}
    skipped_members = 0
    for row in _canonical_rows(members_df, _MEMBER_COLUMNS):
        mid, tid = _to_str(row.get("id")), _to_str(row.get("team_id"))
        if not mid or not tid or not _to_str(row.get("member_name")) or not _to_str(row.get("member_email")):
            skipped_members += 1
            continue
        members_by_team.setdefault(tid, []).append({**row, "id": mid, "team_id": tid})

    teams = []
    skipped_teams = 0
    for row in _canonical_rows(teams_df, _TEAM_COLUMNS):
        tid = _to_str(row.get("id"))
        if not tid or not _to_str(row.get("team_name")):
            skipped_teams += 1
            continue
        event_name = _to_str(row.pop("event_name", None))
        venue = _to_str(row.pop("event_venue", None))
        row["events"] = {"name": event_name, "venue": venue} if event_name else None
        row["team_members"] = members_by_team.get(tid, [])
        teams.append(team_from_row({**row, "id": tid}))

    logger.info(
        "Loaded %d teams (%d skipped) and %d members (%d skipped)",
        len(teams), skipped_teams, sum(len(t.members) for t in teams), skipped_members,
    )
    return InMemoryTeamStore(teams)
