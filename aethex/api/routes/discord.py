"""
aethex.api.routes.discord — Account linking endpoints
======================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from aethex.api.deps import get_current_user, get_engine
from aethex.services import link_service
from aethex.services.link_service import (
    AlreadyLinkedError,
    ExpiredCodeError,
    InvalidCodeError,
)

router = APIRouter(prefix="/discord", tags=["discord"])
logger = logging.getLogger(__name__)


class VerifyCodeRequest(BaseModel):
    verification_code: str = Field(min_length=1, max_length=12)


def _link_payload(link) -> dict:
    return {
        "discord_id": str(link.discord_id),
        "user_id": link.user_id,
        "primary_arm": link.primary_arm,
        "linked_at": link.linked_at.isoformat() if link.linked_at else None,
    }


@router.post("/verify-code")
def verify_code(
    body: VerifyCodeRequest,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    """Redeem a /verify code for the signed-in AeThex account."""
    try:
        link = link_service.redeem_verification(engine, body.verification_code, str(user["sub"]))
    except (InvalidCodeError, ExpiredCodeError) as exc:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, str(exc))
    except AlreadyLinkedError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, str(exc))

    return {
        "success": True,
        "message": "Discord account linked successfully",
        **_link_payload(link),
    }


@router.get("/link")
def get_my_link(
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    link = link_service.get_link_by_user(engine, str(user["sub"]))
    if link is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "No Discord account linked")
    return _link_payload(link)
