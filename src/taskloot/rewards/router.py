"""Reward API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskloot.auth.dependencies import Principal, get_current_principal
from taskloot.database import get_session
from taskloot.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from taskloot.rewards.schemas import (
    CompanyDetails,
    RedeemRewardRequest,
    RedemptionResponse,
    RewardListResponse,
    RewardResponse,
)
from taskloot.rewards.service import list_user_rewards, redeem_reward

router = APIRouter(prefix="/api/v1/rewards", tags=["Rewards"])


@router.get("", response_model=RewardListResponse)
async def list_rewards_endpoint(
    status: str | None = Query(None, pattern="^(redeemed|unredeemed)$"),
    reward_type: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
) -> RewardListResponse:
    return await list_user_rewards(db, principal.user_id, status, reward_type, page, limit)


@router.post("/redeem", response_model=RedemptionResponse)
async def redeem_reward_endpoint(
    body: RedeemRewardRequest,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    redemption = await redeem_reward(db, principal.user_id, body.reward_code)
    company = redemption.company
    return RedemptionResponse(
        reward=RewardResponse.model_validate(redemption.reward),
        company_details=CompanyDetails(
            company_name=company.company_name if company else None,
            contact_person=company.contact_person if company else None,
            website_url=company.website_url if company else None,
            registered_address=company.registered_address if company else None,
        ),
        how_to_redeem=redemption.how_to_redeem,
    )
