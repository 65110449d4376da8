"""
Records flowing through the pass pipeline.

Team, Member and Event mirror the rows of the registration database; the core
only reads them (plus the pass URL / generated flag / attendance writes done
through the store).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

INLINE_URL_PREFIX = "data:"


@dataclass(frozen=True)
class PassRequest:
    team_id: str
    team_name: str
    event_name: str
    college_name: str
    participant_name: str
    participant_email: str
    participant_phone: str = ""
    payment_status: str = "PAID"


@dataclass
class Event:
    name: str
    id: Optional[str] = None
    slug: Optional[str] = None
    venue: Optional[str] = None
    start_time: Optional[str] = None


@dataclass
class Member:
    id: str
    team_id: str
    name: str
    email: str
    contact: str = ""
    role: str = "member"
    pass_url: Optional[str] = None
    is_present: bool = False
    attendance_marked_at: Optional[str] = None

    @property
    def is_captain(self) -> bool:
        return (self.role or "").strip().lower() == "captain"


@dataclass
class Team:
    id: str
    team_name: str
    team_code: Optional[str] = None
    college_name: Optional[str] = None
    captain_name: Optional[str] = None
    captain_email: Optional[str] = None
    captain_phone: Optional[str] = None
    transaction_id: Optional[str] = None
    has_paid: bool = False
    passes_generated: bool = False
    event: Optional[Event] = None
    members: List[Member] = field(default_factory=list)

    @property
    def display_id(self) -> str:
        """Short code printed on passes: team code, else the id's first 8 chars."""
        if self.team_code:
            return self.team_code
        return str(self.id)[:8].upper()

    @property
    def event_name(self) -> str:
        if self.event and self.event.name:
            return self.event.name
        return "Event"

    @property
    def captain(self) -> Optional[Member]:
        for m in self.members:
            if m.is_captain:
                return m
        return None

    @property
    def notification_email(self) -> Optional[str]:
        captain = self.captain
        if captain and captain.email:
            return captain.email
        return self.captain_email

    @property
    def notification_name(self) -> str:
        captain = self.captain
        if captain and captain.name:
            return captain.name
        return self.captain_name or self.team_name


@dataclass(frozen=True)
class PublishedArtifact:
    member_id: str
    name: str
    email: str
    url: str

    @property
    def is_inline(self) -> bool:
        return self.url.startswith(INLINE_URL_PREFIX)

    def to_dict(self) -> Dict[str, str]:
        return {"memberId": self.member_id, "name": self.name, "email": self.email, "url": self.url}


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class MemberOutcome:
    member: Member
    artifact: Optional[PublishedArtifact] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.artifact is not None


@dataclass
class BatchResult:
    team_id: str
    success: bool
    artifacts: List[PublishedArtifact] = field(default_factory=list)
    failed_members: List[str] = field(default_factory=list)
    notification_sent: bool = False
    marked_generated: bool = False
    skipped_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teamId": self.team_id,
            "success": self.success,
            "passUrls": [a.to_dict() for a in self.artifacts],
            "failedMembers": list(self.failed_members),
            "notificationSent": self.notification_sent,
            "markedGenerated": self.marked_generated,
            "skippedReason": self.skipped_reason,
        }
