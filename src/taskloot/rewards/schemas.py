"""Pydantic schemas for reward endpoints."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from taskloot.pagination import Pagination


class RedeemRewardRequest(BaseModel):
    reward_code: str = Field(..., min_length=1, max_length=50)


class RewardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    task_id: str
    reward_code: str
    reward_type: str
    reward_value: Decimal
    reward_description: str | None = None
    is_redeemed: bool
    redeemed_at: datetime | None = None
    expires_at: datetime
    created_at: datetime


class RewardListItem(RewardResponse):
    task_title: str | None = None
    company_id: str | None = None
    company_name: str | None = None
    company_logo: str | None = None


class RewardSummary(BaseModel):
    total_rewards: int
    unredeemed_count: int
    redeemed_count: int
    total_unredeemed_value: Decimal
    total_rewards_value: Decimal


class RewardListResponse(BaseModel):
    rewards: list[RewardListItem]
    summary: RewardSummary
    pagination: Pagination


class CompanyDetails(BaseModel):
    company_name: str | None = None
    contact_person: str | None = None
    website_url: str | None = None
    registered_address: str | None = None


class RedemptionResponse(BaseModel):
    reward: RewardResponse
    company_details: CompanyDetails
    how_to_redeem: str
