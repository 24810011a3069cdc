"""
Team DTOs (Pydantic v2).
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import EmailStr, Field

from application.dtos.base import DTOBase
from domain.team.entity import TeamRole


class CreateOrganization(DTOBase):
    name: str = Field(..., min_length=1, max_length=200)


class AddMember(DTOBase):
    email: EmailStr
    role: TeamRole = TeamRole.MEMBER


class UpdateMemberRole(DTOBase):
    role: TeamRole


class OrganizationResponse(DTOBase):
    id: str
    name: str
    created_at: Optional[datetime] = None


class MemberResponse(DTOBase):
    id: str
    organization_id: str
    user_id: str
    email: Optional[str] = None
    role: TeamRole
    invited_by: Optional[str] = None
    created_at: Optional[datetime] = None
