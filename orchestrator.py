"""
Batch pass generation for a team.

run_for_team() loads a paid team, renders and publishes one pass per member
concurrently (asyncio.gather over worker-thread calls), sends one email to
the captain listing every pass that succeeded, then marks the team as
"passes generated" according to the configured MarkPolicy.

Only TeamNotFoundError and PassAssetError escape run_for_team(); every other
failure is logged and reflected in the returned BatchResult.
"""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from enum import Enum
from typing import Any, List, Optional

from config import DEFAULT_BATCH_LIMIT, DEFAULT_KEY_PREFIX, Settings
from email_templates import passes_email_subject, render_passes_email
from errors import PassAssetError, TeamNotFoundError
from models import BatchResult, Member, MemberOutcome, PassRequest, PublishedArtifact, Team
from utils import is_inline_url, pass_public_id

logger = logging.getLogger(__name__)


class MarkPolicy(str, Enum):
    ALWAYS = "always"  # mark once every member was attempted, even with failures
    ALL_SUCCEEDED = "all_succeeded"  # leave unmarked for retry if any member failed

    @classmethod
    def parse(cls, value: str) -> "MarkPolicy":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValueError(f"Unknown mark policy: {value!r} (expected one of {[p.value for p in cls]})")


def build_pass_request(team: Team, member: Member, payment_status: str = "PAID") -> PassRequest:
    return PassRequest(
        team_id=team.display_id,
        team_name=team.team_name,
        event_name=team.event_name,
        college_name=team.college_name or "N/A",
        participant_name=member.name,
        participant_email=member.email,
        participant_phone=member.contact or "",
        payment_status=payment_status,
    )


def captain_member(team: Team) -> Optional[Member]:
    """Stand-in member built from the team's captain columns (no member row)."""
    if not team.captain_name or not team.captain_email:
        return None
    return Member(
        id="",
        team_id=team.id,
        name=team.captain_name,
        email=team.captain_email,
        contact=team.captain_phone or "",
        role="captain",
    )


class PassBatchOrchestrator:
    def __init__(
        self,
        store: Any,
        renderer: Any,
        publisher: Any,
        mailer: Any,
        *,
        mark_policy: MarkPolicy = MarkPolicy.ALWAYS,
        notify_empty: bool = False,
        reuse_existing: bool = False,
        captain_fallback: bool = False,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        brand_name: str = "Event Passes",
        support_email: Optional[str] = None,
        event_dates: Optional[str] = None,
    ):
        self.store = store
        self.renderer = renderer
        self.publisher = publisher
        self.mailer = mailer
        self.mark_policy = mark_policy
        self.notify_empty = notify_empty
        self.reuse_existing = reuse_existing
        self.captain_fallback = captain_fallback
        self.key_prefix = key_prefix
        self.brand_name = brand_name
        self.support_email = support_email
        self.event_dates = event_dates
        # Held only while a run is in flight for that team
        self._team_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, team_id: str) -> asyncio.Lock:
        lock = self._team_locks.get(team_id)
        if lock is None:
            lock = self._team_locks[team_id] = asyncio.Lock()
        return lock

    def _public_id(self, request: PassRequest) -> str:
        return pass_public_id(request.participant_name, request.team_id, prefix=self.key_prefix)

    async def _process_member(self, team: Team, member: Member) -> MemberOutcome:
        """Render, publish and record one member's pass. Raises only PassAssetError."""
        if self.reuse_existing and member.pass_url and not is_inline_url(member.pass_url):
            logger.info("Reusing existing pass for %s (%s)", member.name, member.email)
            artifact = PublishedArtifact(member.id, member.name, member.email, member.pass_url)
            return MemberOutcome(member, artifact=artifact)

        logger.info("Generating pass for: %s (%s)", member.name, member.email)
        try:
            request = build_pass_request(team, member)
            buffer = await asyncio.to_thread(self.renderer.render, request)
            url = await asyncio.to_thread(self.publisher.publish, buffer, self._public_id(request))
        except PassAssetError:
            raise
        except Exception as exc:
            logger.exception("Failed to generate pass for %s (team %s)", member.name, team.display_id)
            return MemberOutcome(member, error=f"{type(exc).__name__}: {exc}")

        # Captain stand-in has no member row to update
        if member.id and not is_inline_url(url):
            try:
                await asyncio.to_thread(self.store.update_member_pass_url, member.id, url)
            except Exception:
                # The upload is valid; only the stored link is stale
                logger.exception("Could not record pass URL for member %s", member.id)
        return MemberOutcome(member, artifact=PublishedArtifact(member.id, member.name, member.email, url))

    async def _notify(self, team: Team, artifacts: List[PublishedArtifact]) -> bool:
        to = team.notification_email
        if not to:
            logger.error("Team %s has no captain email; notification not sent", team.display_id)
            return False
        html = render_passes_email(team, artifacts, self.brand_name, self.support_email, self.event_dates)
        subject = passes_email_subject(team.event_name, self.brand_name)
        logger.info("Sending %d pass link(s) to captain: %s", len(artifacts), to)
        try:
            result = await asyncio.to_thread(self.mailer.send, to, subject, html)
        except Exception:
            logger.exception("Email send raised for team %s", team.display_id)
            return False
        if not result.success:
            logger.error("Failed to send passes email to %s: %s", to, result.error)
        return bool(result.success)

    async def run_for_team(self, team_id: str, *, force: bool = False) -> BatchResult:
        """
        Generate, publish and announce passes for every member of a team.

        Raises:
            TeamNotFoundError: no team with this id.
        """
        async with self._lock_for(str(team_id)):
            team = await asyncio.to_thread(self.store.get_team_with_members, team_id)
            if not team.has_paid:
                logger.warning("Team %s has not paid; skipping pass generation", team.display_id)
                return BatchResult(team.id, success=False, skipped_reason="not_paid")
            if team.passes_generated and not force:
                logger.info("Passes already generated for team %s; skipping", team.display_id)
                return BatchResult(team.id, success=True, marked_generated=True, skipped_reason="already_generated")
            return await self._run(team)

    def _members_for(self, team: Team) -> List[Member]:
        if team.members or not self.captain_fallback:
            return list(team.members)
        captain = captain_member(team)
        if captain is None:
            logger.warning("Team %s has no members and no captain details", team.display_id)
            return []
        logger.info("Team %s has no member rows; generating a captain-only pass", team.display_id)
        return [captain]

    def _warn_key_collisions(self, team: Team, members: List[Member]) -> None:
        seen = {}
        for m in members:
            key = self._public_id(build_pass_request(team, m))
            if key in seen:
                logger.warning("Members %r and %r of team %s share storage key %s; one pass will overwrite the other",
                               seen[key], m.name, team.display_id, key)
            else:
                seen[key] = m.name

    async def _run(self, team: Team) -> BatchResult:
        load = getattr(self.renderer, "load", None)
        if load is not None:
            # Missing template/fonts fail the run before any team state changes
            await asyncio.to_thread(load)

        members = self._members_for(team)
        logger.info("Generating passes for team: %s (%s), %d member(s)",
                    team.team_name, team.display_id, len(members))
        self._warn_key_collisions(team, members)
        t0 = time.perf_counter()
        outcomes = await asyncio.gather(*(self._process_member(team, m) for m in members))
        artifacts = [o.artifact for o in outcomes if o.ok]
        failed = [o.member.id or o.member.email for o in outcomes if not o.ok]
        logger.info("Team %s: %d/%d passes in %.2fs",
                    team.display_id, len(artifacts), len(outcomes), time.perf_counter() - t0)

        notified = False
        if artifacts or self.notify_empty:
            notified = await self._notify(team, artifacts)
        else:
            logger.warning("No passes for team %s; notification suppressed", team.display_id)

        result = BatchResult(team.id, success=True, artifacts=artifacts, failed_members=failed,
                             notification_sent=notified)
        if failed and self.mark_policy == MarkPolicy.ALL_SUCCEEDED:
            logger.warning("Team %s left unmarked for retry: %d member(s) failed", team.display_id, len(failed))
            return result
        try:
            await asyncio.to_thread(self.store.mark_team_passes_generated, team.id)
            result.marked_generated = True
            logger.info("Marked team %s as processed", team.team_name)
        except Exception:
            logger.exception("Could not mark team %s as generated", team.id)
            result.success = False
        return result

    async def run_pending(self, limit: Optional[int] = None) -> List[BatchResult]:
        """Process paid teams whose passes are not generated yet, one team at a time."""
        limit = DEFAULT_BATCH_LIMIT if limit is None else limit
        teams = await asyncio.to_thread(self.store.list_pending_teams, limit)
        if not teams:
            logger.info("No teams to process")
            return []
        logger.info("Found %d team(s) to process", len(teams))
        results = []
        for team in teams:
            try:
                results.append(await self.run_for_team(team.id))
            except TeamNotFoundError:
                # Deleted between listing and processing
                logger.warning("Team %s disappeared before processing", team.id)
            except PassAssetError:
                raise
            except Exception as exc:
                logger.exception("Pass generation failed for team %s; continuing with the next team", team.id)
                results.append(BatchResult(team.id, success=False, skipped_reason=f"error: {type(exc).__name__}"))
        return results


def build_orchestrator(settings: Settings, store: Any = None) -> PassBatchOrchestrator:
    """Wire the production collaborators (Supabase, Cloudinary, Resend) from settings."""
    from data_loaders import SupabaseTeamStore
    from emailer import ResendMailer
    from pass_generator import get_renderer
    from publisher import ArtifactPublisher

    if store is None:
        store = SupabaseTeamStore(settings.supabase_url or "", settings.supabase_service_key or "")
    return PassBatchOrchestrator(
        store,
        get_renderer(settings),
        ArtifactPublisher.from_settings(settings),
        ResendMailer.from_settings(settings),
        mark_policy=MarkPolicy.parse(settings.mark_policy),
        notify_empty=settings.notify_empty,
        reuse_existing=settings.reuse_existing,
        captain_fallback=settings.captain_fallback,
        key_prefix=settings.key_prefix,
        brand_name=settings.brand_name,
        support_email=settings.support_email,
        event_dates=settings.event_dates,
    )
