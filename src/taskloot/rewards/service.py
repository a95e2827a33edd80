"""Reward ledger: issuance, listing and one-time redemption.

Rules:
- At most one reward per (user, task), enforced by a unique constraint
- Reward codes are globally unique; a colliding code is regenerated inside a
  SAVEPOINT so the surrounding transaction survives
- Reward terms are copied from the task at issuance and never change
- Redemption flips is_redeemed exactly once, guarded in the UPDATE itself
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskloot.config import Settings, get_settings
from taskloot.db.models import CompanyProfile, Task, UserReward
from taskloot.errors import ConflictError, GoneError, NotFoundError, ValidationError
from taskloot.pagination import build_pagination, validate_page
from taskloot.rewards.codes import generate_reward_code, normalize_reward_code
from taskloot.rewards.schemas import RewardListItem, RewardListResponse, RewardSummary
from taskloot.timeutils import is_past, utcnow

logger = structlog.get_logger()

REDEMPTION_INSTRUCTIONS = {
    "discount": "Show this code at the store or enter it during online checkout to avail the discount.",
    "coupon": "Use this code during online checkout to apply the coupon.",
    "points": "These points have been added to your account and can be redeemed for rewards.",
    "cashback": "The cashback amount will be credited to your registered bank account within 5-7 business days.",
}
DEFAULT_REDEMPTION_INSTRUCTIONS = "Please contact the company for redemption instructions."

REWARD_STATUS_FILTERS = ("redeemed", "unredeemed")
CENTS = Decimal("0.01")


@dataclass
class Redemption:
    reward: UserReward
    company: CompanyProfile | None
    how_to_redeem: str


def get_redemption_instructions(reward_type: str) -> str:
    return REDEMPTION_INSTRUCTIONS.get(reward_type, DEFAULT_REDEMPTION_INSTRUCTIONS)


async def get_user_reward_for_task(db: AsyncSession, user_id: str, task_id: str) -> UserReward | None:
    result = await db.execute(
        select(UserReward).where(UserReward.user_id == user_id, UserReward.task_id == task_id)
    )
    return result.scalar_one_or_none()


async def issue_reward(
    db: AsyncSession,
    user_id: str,
    task_id: str,
    *,
    commit: bool = True,
    settings: Settings | None = None,
) -> UserReward:
    """Issue the reward for a successful attempt.

    With ``commit=False`` the reward joins the caller's open transaction.

    Raises:
        ConflictError: the user already holds this task's reward, or no unique
            code could be generated within ``reward_code_max_attempts`` tries.
        NotFoundError: the task does not exist.
    """
    settings = settings or get_settings()

    if await get_user_reward_for_task(db, user_id, task_id) is not None:
        raise ConflictError("Reward already exists for this task", resource_id=task_id)

    task = await db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found", resource_id=task_id)

    now = utcnow()
    reward = None
    for attempt in range(1, settings.reward_code_max_attempts + 1):
        candidate = UserReward(
            user_id=user_id,
            task_id=task_id,
            reward_code=generate_reward_code(),
            reward_type=task.reward_type,
            reward_value=task.reward_value,
            reward_description=task.reward_description,
            is_redeemed=False,
            expires_at=now + timedelta(days=settings.reward_expiry_days),
            created_at=now,
        )
        try:
            async with db.begin_nested():
                db.add(candidate)
        except IntegrityError as e:
            if await get_user_reward_for_task(db, user_id, task_id) is not None:
                raise ConflictError("Reward already exists for this task", resource_id=task_id) from e
            logger.warning("reward_code_collision", task_id=task_id, user_id=user_id, attempt=attempt)
            continue
        reward = candidate
        break

    if reward is None:
        raise ConflictError(
            f"Could not generate a unique reward code after {settings.reward_code_max_attempts} attempts",
            resource_id=task_id,
        )

    if commit:
        await db.commit()

    logger.info(
        "reward_issued",
        reward_id=reward.id,
        user_id=user_id,
        task_id=task_id,
        reward_type=reward.reward_type,
        reward_value=str(reward.reward_value),
    )
    return reward


async def redeem_reward(db: AsyncSession, user_id: str, reward_code: str) -> Redemption:
    """Redeem a reward code once, before it expires.

    A code belonging to someone else is reported as not found.
    """
    code = normalize_reward_code(reward_code)
    result = await db.execute(
        select(UserReward).where(UserReward.reward_code == code, UserReward.user_id == user_id)
    )
    reward = result.scalar_one_or_none()
    if reward is None:
        raise NotFoundError("Reward not found", resource_id=code)
    if reward.is_redeemed:
        raise ConflictError("Reward has already been redeemed", resource_id=code)

    now = utcnow()
    if is_past(reward.expires_at, now):
        raise GoneError("Reward has expired", resource_id=code)

    updated = await db.execute(
        update(UserReward)
        .where(UserReward.id == reward.id, UserReward.is_redeemed.is_(False))
        .values(is_redeemed=True, redeemed_at=now)
        .execution_options(synchronize_session=False)
    )
    if updated.rowcount != 1:
        await db.rollback()
        raise ConflictError("Reward has already been redeemed", resource_id=code)
    await db.commit()
    await db.refresh(reward)

    company = (
        await db.execute(
            select(CompanyProfile)
            .join(Task, Task.company_id == CompanyProfile.company_id)
            .where(Task.id == reward.task_id)
        )
    ).scalar_one_or_none()

    logger.info(
        "reward_redeemed",
        reward_id=reward.id,
        user_id=user_id,
        reward_code=code,
        reward_value=str(reward.reward_value),
        company_id=company.company_id if company else None,
    )
    return Redemption(
        reward=reward,
        company=company,
        how_to_redeem=get_redemption_instructions(reward.reward_type),
    )


async def list_user_rewards(
    db: AsyncSession,
    user_id: str,
    status: str | None = None,
    reward_type: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> RewardListResponse:
    """A user's rewards, newest first, with a summary over all of them."""
    offset = validate_page(page, limit)
    if status is not None and status not in REWARD_STATUS_FILTERS:
        raise ValidationError("status must be 'redeemed' or 'unredeemed'", field="status")

    conditions = [UserReward.user_id == user_id]
    if status == "redeemed":
        conditions.append(UserReward.is_redeemed.is_(True))
    elif status == "unredeemed":
        conditions.append(UserReward.is_redeemed.is_(False))
    if reward_type:
        conditions.append(UserReward.reward_type == reward_type)

    total = (
        await db.execute(select(func.count()).select_from(UserReward).where(*conditions))
    ).scalar_one()

    rows = await db.execute(
        select(UserReward, Task.title, Task.company_id, CompanyProfile.company_name, CompanyProfile.logo_url)
        .join(Task, Task.id == UserReward.task_id)
        .outerjoin(CompanyProfile, CompanyProfile.company_id == Task.company_id)
        .where(*conditions)
        .order_by(UserReward.created_at.desc(), UserReward.id)
        .offset(offset)
        .limit(limit)
    )
    rewards = []
    for reward, task_title, company_id, company_name, logo_url in rows.all():
        item = RewardListItem.model_validate(reward)
        item.task_title = task_title
        item.company_id = company_id
        item.company_name = company_name
        item.company_logo = logo_url
        rewards.append(item)

    unredeemed = UserReward.is_redeemed.is_(False)
    summary_row = (
        await db.execute(
            select(
                func.count(UserReward.id),
                func.count(case((unredeemed, 1))),
                func.count(case((UserReward.is_redeemed.is_(True), 1))),
                func.coalesce(func.sum(case((unredeemed, UserReward.reward_value), else_=0)), 0),
                func.coalesce(func.sum(UserReward.reward_value), 0),
            ).where(UserReward.user_id == user_id)
        )
    ).one()

    summary = RewardSummary(
        total_rewards=summary_row[0],
        unredeemed_count=summary_row[1],
        redeemed_count=summary_row[2],
        total_unredeemed_value=Decimal(str(summary_row[3])).quantize(CENTS),
        total_rewards_value=Decimal(str(summary_row[4])).quantize(CENTS),
    )
    return RewardListResponse(
        rewards=rewards,
        summary=summary,
        pagination=build_pagination(page, limit, total),
    )
