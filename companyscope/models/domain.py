"""Wire payloads returned by the dashboard backend."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from companyscope.types import MemberStatus


class Tenant(BaseModel):
    """A company the signed-in user belongs to. Identity is ``id``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    name: str
    logo_url: str | None = None


class CompanyUser(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+$")
    full_name: str | None = Field(
        default=None, validation_alias=AliasChoices("full_name", "fullName")
    )
    avatar_url: str | None = Field(
        default=None, validation_alias=AliasChoices("avatar_url", "avatarUrl")
    )
    last_sign_in_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("last_sign_in_at", "lastSignIn")
    )
    role: str
    status: MemberStatus = MemberStatus.ACTIVE


class CompanyDetails(BaseModel):
    """Company record plus the caller's role in it."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str
    logo_url: str | None = None
    plan: str | None = None
    billing_email: str | None = None
    active: bool | None = None
    user_role: str | None = Field(
        default=None, validation_alias=AliasChoices("user_role", "userRole")
    )

    def as_tenant(self) -> Tenant:
        return Tenant(id=self.id, name=self.name, logo_url=self.logo_url)


class ApplicationCategory(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    sort_order: int = 0


class Automation(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    is_active: bool = True


class CompanyAutomation(BaseModel):
    """An automation installed for one company, with its catalog entry."""

    model_config = ConfigDict(extra="allow")

    id: str
    company_id: str
    automation_id: str | None = None
    is_active: bool = True
    automation: Automation | None = None


class Notification(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    title: str = ""
    read: bool = False
    created_at: datetime | None = None
    data: dict[str, Any] = {}
