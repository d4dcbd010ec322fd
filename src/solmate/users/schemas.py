"""Pydantic request/response models for user and auth endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, computed_field, field_serializer

from solmate.db.models import Gender
from solmate.schemas import ApiModel
from solmate.users.service import ghosting_risk as classify_ghosting_risk


class UserResponse(ApiModel):
    id: str
    wallet_address: str
    name: str
    age: int
    gender: Gender
    bio: str
    photos: list[str]
    preferred_tip_amount: int
    is_online: bool
    last_active: datetime
    match_count: int
    ghosted_count: int
    ghosted_by_count: int
    created_at: datetime
    updated_at: datetime

    @field_serializer("gender")
    def _lowercase_gender(self, gender: Gender) -> str:
        return gender.value.lower()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ghosting_risk(self) -> str:
        return classify_ghosting_risk(self.ghosted_count)


class SignInRequest(ApiModel):
    wallet_address: str = Field(min_length=1, max_length=64)


class SignInResponse(ApiModel):
    user: UserResponse | None
    needs_onboarding: bool


class OnboardRequest(ApiModel):
    wallet_address: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=64)
    age: int
    gender: str
    bio: str | None = None
    photos: list[str] | None = None
    preferred_tip_amount: int | None = None


class OnboardResponse(ApiModel):
    user: UserResponse
