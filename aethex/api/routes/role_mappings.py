"""
aethex.api.routes.role_mappings — Admin CRUD for Discord role mappings
=======================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from aethex.api.deps import admin_actor_id, get_current_admin, get_engine
from aethex.database.models import RoleMapping
from aethex.services import role_mapping_service
from aethex.services.role_mapping_service import DuplicateMappingError

router = APIRouter(prefix="/admin/role-mappings", tags=["admin"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class RoleMappingCreate(BaseModel):
    arm: str | None = None
    discord_role_name: str | None = None
    discord_role: str | None = None  # Accepted alias of discord_role_name
    discord_role_id: str | None = None
    guild_id: int | None = None
    user_type: str | None = None
    arm_family: bool = True


class RoleMappingUpdate(BaseModel):
    id: int | None = None
    arm: str | None = None
    discord_role_name: str | None = None
    discord_role: str | None = None
    discord_role_id: str | None = None
    guild_id: int | None = None
    user_type: str | None = None
    arm_family: bool | None = None


def _mapping_payload(row: RoleMapping) -> dict:
    return {
        "id": row.id,
        "guild_id": str(row.guild_id) if row.guild_id is not None else None,
        "arm": row.arm,
        "user_type": row.user_type,
        "discord_role_name": row.discord_role_name,
        "discord_role_id": row.discord_role_id,
        "arm_family": row.arm_family,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.get("")
def list_role_mappings(
    guild_id: int | None = Query(None),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    rows = role_mapping_service.list_mappings(engine, guild_id=guild_id)
    return [_mapping_payload(r) for r in rows]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_role_mapping(
    body: RoleMappingCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    role_name = body.discord_role_name or body.discord_role
    if not body.arm or not role_name:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            "arm and discord_role (or discord_role_name) are required",
        )
    try:
        row = role_mapping_service.create_mapping(
            engine,
            arm=body.arm,
            discord_role_name=role_name,
            discord_role_id=body.discord_role_id,
            guild_id=body.guild_id,
            user_type=body.user_type,
            arm_family=body.arm_family,
            actor_id=admin_actor_id(admin),
        )
    except DuplicateMappingError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, str(exc))
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))
    return _mapping_payload(row)


@router.put("")
def update_role_mapping(
    body: RoleMappingUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    if body.id is None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "id is required")
    changes = body.model_dump(exclude_unset=True, exclude={"id"})
    alias = changes.pop("discord_role", None)
    if alias and not changes.get("discord_role_name"):
        changes["discord_role_name"] = alias
    try:
        row = role_mapping_service.update_mapping(
            engine, body.id, actor_id=admin_actor_id(admin), **changes,
        )
    except DuplicateMappingError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, str(exc))
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc))
    if row is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Role mapping not found")
    return _mapping_payload(row)


@router.delete("")
def delete_role_mapping(
    id: int | None = Query(None),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    if id is None:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "id is required")
    if not role_mapping_service.delete_mapping(engine, id, actor_id=admin_actor_id(admin)):
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Role mapping not found")
    return {"success": True}
