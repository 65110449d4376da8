"""Check-in from a scanned pass QR code."""

import logging
from dataclasses import dataclass
from typing import Any

from errors import MemberNotFoundError
from models import Member, Team
from qr_payload import decode

logger = logging.getLogger(__name__)


@dataclass
class CheckInResult:
    team: Team
    member: Member
    is_present: bool
    marked_at: str


def check_in(store: Any, raw_payload: str, is_present: bool = True) -> CheckInResult:
    """
    Mark the participant named in a scanned payload as present (or absent).

    Raises:
        InvalidPayloadError: payload is not pass JSON
        MemberNotFoundError: no member matches (teamId, participantEmail)
    """
    data = decode(raw_payload)
    team_ref = str(data["teamId"]).strip()
    email = str(data["participantEmail"]).strip()
    found = store.find_member_for_scan(team_ref, email)
    if found is None:
        raise MemberNotFoundError(f"No member {email} in team {team_ref}")
    team, member = found
    marked_at = store.mark_attendance(member.id, is_present)
    logger.info("Attendance %s for %s (%s)", "marked" if is_present else "cleared", member.name, team.display_id)
    return CheckInResult(team=team, member=member, is_present=is_present, marked_at=marked_at)
