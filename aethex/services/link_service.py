"""
aethex.services.link_service — Discord ↔ AeThex Account Linking
================================================================

How linking works:
    1. A member runs ``/verify`` in Discord; the bot stores a short code
       (six characters, 15 minutes by default) against their Discord id.
    2. The member opens the verify page while signed in to AeThex and
       submits the code.
    3. :func:`redeem_verification` checks the code, creates the
       ``discord_links`` row, and consumes the code.

The link also stores the member's primary arm, written by ``/set-realm``
and read by every role sync.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from aethex.constants import VERIFICATION_CODE_ALPHABET, VERIFICATION_CODE_LENGTH
from aethex.database.engine import get_session
from aethex.database.models import DiscordLink, DiscordVerification, is_known_arm

logger = logging.getLogger(__name__)


class InvalidCodeError(ValueError):
    """The verification code does not exist."""


class ExpiredCodeError(ValueError):
    """The verification code exists but has expired."""


class AlreadyLinkedError(ValueError):
    """The Discord account or the AeThex account is already linked."""


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def generate_code() -> str:
    return "".join(
        secrets.choice(VERIFICATION_CODE_ALPHABET) for _ in range(VERIFICATION_CODE_LENGTH)
    )


def _link_conflict(session: Session, discord_id: int, user_id: str) -> str | None:
    if session.get(DiscordLink, discord_id) is not None:
        return "This Discord account is already linked to another AeThex account"
    if session.scalar(select(DiscordLink).where(DiscordLink.user_id == user_id)) is not None:
        return "This AeThex account is already linked to another Discord account"
    return None


# ---------------------------------------------------------------------------
# Verification codes
# ---------------------------------------------------------------------------
def create_verification(
    engine: Engine,
    discord_id: int,
    username: str | None = None,
    ttl_minutes: int = 15,
) -> DiscordVerification:
    """Issue a fresh code for *discord_id*, replacing any earlier ones."""
    now = datetime.now(UTC)
    with get_session(engine) as session:
        session.execute(
            delete(DiscordVerification).where(DiscordVerification.discord_id == discord_id)
        )
        code = generate_code()
        while session.get(DiscordVerification, code) is not None:
            code = generate_code()

        row = DiscordVerification(
            verification_code=code,
            discord_id=discord_id,
            username=username,
            expires_at=now + timedelta(minutes=ttl_minutes),
        )
        session.add(row)
        session.flush()
        session.expunge(row)

    logger.info("Verification code issued for Discord user %d", discord_id)
    return row


def redeem_verification(engine: Engine, code: str, user_id: str) -> DiscordLink:
    """Link the Discord account behind *code* to AeThex account *user_id*.

    Raises
    ------
    InvalidCodeError
        Unknown code.
    ExpiredCodeError
        Code past its expiry (the code is deleted).
    AlreadyLinkedError
        Either side is already linked to someone else.
    """
    code = (code or "").strip().upper()
    if not code:
        raise InvalidCodeError("Verification code is required")

    with Session(engine, expire_on_commit=False) as session:
        verification = session.get(DiscordVerification, code)
        if verification is None:
            raise InvalidCodeError("Invalid verification code")

        if _as_utc(verification.expires_at) <= datetime.now(UTC):
            session.delete(verification)
            session.commit()
            raise ExpiredCodeError("Verification code has expired")

        discord_id = verification.discord_id
        conflict = _link_conflict(session, discord_id, user_id)
        if conflict:
            raise AlreadyLinkedError(conflict)

        link = DiscordLink(discord_id=discord_id, user_id=user_id)
        session.add(link)
        session.delete(verification)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise AlreadyLinkedError(
                "This Discord or AeThex account was linked by another request"
            ) from exc
        session.refresh(link)
        session.expunge(link)

    logger.info("Discord user %d linked to AeThex account %s", discord_id, user_id)
    return link


def purge_expired_verifications(engine: Engine) -> int:
    """Delete expired codes.  Returns the number removed."""
    with get_session(engine) as session:
        result = session.execute(
            delete(DiscordVerification).where(
                DiscordVerification.expires_at <= datetime.now(UTC)
            )
        )
        removed = result.rowcount or 0
    if removed:
        logger.info("Purged %d expired verification codes", removed)
    return removed


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------
def get_link(engine: Engine, discord_id: int) -> DiscordLink | None:
    with get_session(engine) as session:
        link = session.get(DiscordLink, discord_id)
        if link is not None:
            session.expunge(link)
        return link


def get_link_by_user(engine: Engine, user_id: str) -> DiscordLink | None:
    with get_session(engine) as session:
        link = session.scalar(select(DiscordLink).where(DiscordLink.user_id == user_id))
        if link is not None:
            session.expunge(link)
        return link


def set_primary_arm(engine: Engine, discord_id: int, arm: str) -> DiscordLink | None:
    """Store *arm* as the primary arm.  Returns ``None`` if not linked."""
    if not is_known_arm(arm):
        raise ValueError(f"Unknown arm: {arm!r}")

    with get_session(engine) as session:
        link = session.get(DiscordLink, discord_id)
        if link is None:
            return None
        link.primary_arm = arm
        session.flush()
        session.expunge(link)

    logger.info("Discord user %d set primary arm → %s", discord_id, arm)
    return link


def unlink(engine: Engine, discord_id: int) -> bool:
    """Remove the link for *discord_id*.  Returns ``True`` if one existed."""
    with get_session(engine) as session:
        link = session.get(DiscordLink, discord_id)
        if link is None:
            return False
        session.delete(link)

    logger.info("Discord user %d unlinked", discord_id)
    return True
