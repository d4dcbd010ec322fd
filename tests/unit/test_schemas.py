"""Unit tests for wire format: camelCase keys, lowercase gender, ghosting risk."""

from __future__ import annotations

from datetime import datetime, timezone

from solmate.db.models import Gender, User
from solmate.users.schemas import OnboardRequest, UserResponse

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _user(**overrides) -> User:
    fields = {
        "id": "u-1",
        "wallet_address": "w-1",
        "name": "Emma",
        "age": 24,
        "gender": Gender.FEMALE,
        "bio": "",
        "photos": ["p1"],
        "preferred_tip_amount": 5,
        "is_online": True,
        "last_active": NOW,
        "created_at": NOW,
        "updated_at": NOW,
        "match_count": 0,
        "ghosted_count": 0,
        "ghosted_by_count": 0,
    }
    fields.update(overrides)
    return User(**fields)


class TestUserResponse:
    def test_camel_case_keys(self):
        data = UserResponse.model_validate(_user()).model_dump(mode="json", by_alias=True)
        assert data["walletAddress"] == "w-1"
        assert data["preferredTipAmount"] == 5
        assert data["ghostedByCount"] == 0
        assert "wallet_address" not in data

    def test_gender_lowercase_on_wire(self):
        data = UserResponse.model_validate(_user()).model_dump(mode="json", by_alias=True)
        assert data["gender"] == "female"

    def test_ghosting_risk_computed(self):
        data = UserResponse.model_validate(_user(ghosted_count=5)).model_dump(mode="json", by_alias=True)
        assert data["ghostingRisk"] == "high"


class TestRequestAliases:
    def test_accepts_camel_and_snake(self):
        camel = OnboardRequest.model_validate(
            {"walletAddress": "w", "name": "A", "age": 30, "gender": "male", "preferredTipAmount": 4}
        )
        snake = OnboardRequest.model_validate(
            {"wallet_address": "w", "name": "A", "age": 30, "gender": "male", "preferred_tip_amount": 4}
        )
        assert camel == snake
