"""Tests for filtered, paginated task listings."""

from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import update

from taskloot.db.models import CompanyProfile, Task
from taskloot.errors import ValidationError
from taskloot.tasks.schemas import TaskFilters
from taskloot.tasks.service import create_task, feature_task, list_tasks, publish_task
from taskloot.timeutils import utcnow

COMPANY_ID = "company-0001"
MUMBAI_COMPANY_ID = "company-0003"


async def _make_task(db, cache, generator, company_id, data, image, *, title, publish=True, **overrides):
    fields = {**data, "title": title, **overrides}
    task = await create_task(db, cache, generator, company_id, fields, image)
    if publish:
        task = await publish_task(db, cache, task.id, company_id)
    return task


@pytest_asyncio.fixture
async def catalogue(db_session, cache, generator, company, task_data, image_bytes):
    db_session.add(CompanyProfile(company_id=MUMBAI_COMPANY_ID, company_name="Bombay Brews", city="Mumbai"))
    await db_session.commit()

    easy = await _make_task(db_session, cache, generator, COMPANY_ID, task_data, image_bytes, title="Alpha Puzzle")
    hard = await _make_task(
        db_session, cache, generator, COMPANY_ID, task_data, image_bytes,
        title="Bravo Puzzle", difficulty="hard", reward_value=Decimal("75"),
    )
    mumbai = await _make_task(
        db_session, cache, generator, MUMBAI_COMPANY_ID, task_data, image_bytes,
        title="Charlie Puzzle", task_type="logic", reward_value=Decimal("5"),
    )
    draft = await _make_task(
        db_session, cache, generator, COMPANY_ID, task_data, None, title="Delta Draft", publish=False
    )
    return {"easy": easy, "hard": hard, "mumbai": mumbai, "draft": draft}


@pytest.mark.asyncio
async def test_defaults_to_active_tasks(db_session, catalogue):
    page = await list_tasks(db_session)

    titles = {t.title for t in page.tasks}
    assert titles == {"Alpha Puzzle", "Bravo Puzzle", "Charlie Puzzle"}
    assert page.pagination.total_items == 3
    assert all(t.status == "active" for t in page.tasks)


@pytest.mark.asyncio
async def test_listing_carries_company_details(db_session, catalogue):
    page = await list_tasks(db_session, TaskFilters(city="mum"))

    assert [t.title for t in page.tasks] == ["Charlie Puzzle"]
    assert page.tasks[0].company_name == "Bombay Brews"
    assert page.tasks[0].city == "Mumbai"


@pytest.mark.asyncio
async def test_filter_by_status_difficulty_and_type(db_session, catalogue):
    drafts = await list_tasks(db_session, TaskFilters(status="draft"))
    hard = await list_tasks(db_session, TaskFilters(difficulty="hard"))
    logic = await list_tasks(db_session, TaskFilters(task_type="logic"))

    assert [t.title for t in drafts.tasks] == ["Delta Draft"]
    assert [t.title for t in hard.tasks] == ["Bravo Puzzle"]
    assert [t.title for t in logic.tasks] == ["Charlie Puzzle"]


@pytest.mark.asyncio
async def test_filter_by_company(db_session, catalogue):
    page = await list_tasks(db_session, TaskFilters(company_id=MUMBAI_COMPANY_ID))

    assert [t.company_id for t in page.tasks] == [MUMBAI_COMPANY_ID]


@pytest.mark.asyncio
async def test_no_status_filter_lists_every_status(db_session, catalogue):
    filters = TaskFilters(status=None, company_id=COMPANY_ID, sort_by="title", sort_order="asc")
    page = await list_tasks(db_session, filters)

    assert [(t.title, t.status) for t in page.tasks] == [
        ("Alpha Puzzle", "active"),
        ("Bravo Puzzle", "active"),
        ("Delta Draft", "draft"),
    ]


@pytest.mark.asyncio
async def test_expired_tasks_leave_active_listing(db_session, catalogue):
    await db_session.execute(
        update(Task)
        .where(Task.id == catalogue["easy"].id)
        .values(expires_at=utcnow() - timedelta(minutes=5))
    )
    await db_session.commit()

    active = await list_tasks(db_session)
    expired = await list_tasks(db_session, TaskFilters(status="expired"))

    assert "Alpha Puzzle" not in {t.title for t in active.tasks}
    assert [t.title for t in expired.tasks] == ["Alpha Puzzle"]
    assert expired.tasks[0].status == "expired"


@pytest.mark.asyncio
async def test_featured_only(db_session, cache, catalogue):
    await feature_task(db_session, cache, catalogue["hard"].id, COMPANY_ID, 3)

    page = await list_tasks(db_session, TaskFilters(featured_only=True))

    assert [t.title for t in page.tasks] == ["Bravo Puzzle"]
    assert page.tasks[0].is_featured is True


@pytest.mark.asyncio
async def test_lapsed_feature_is_not_featured(db_session, cache, catalogue):
    await feature_task(db_session, cache, catalogue["hard"].id, COMPANY_ID, 3)
    await db_session.execute(
        update(Task)
        .where(Task.id == catalogue["hard"].id)
        .values(featured_until=utcnow() - timedelta(seconds=1))
    )
    await db_session.commit()

    featured = await list_tasks(db_session, TaskFilters(featured_only=True))
    everything = await list_tasks(db_session)

    assert featured.tasks == []
    assert not any(t.is_featured for t in everything.tasks)


@pytest.mark.asyncio
async def test_sort_by_reward_value(db_session, catalogue):
    asc = await list_tasks(db_session, TaskFilters(sort_by="reward_value", sort_order="asc"))
    desc = await list_tasks(db_session, TaskFilters(sort_by="reward_value", sort_order="desc"))

    assert [t.reward_value for t in asc.tasks] == [Decimal("5.00"), Decimal("20.00"), Decimal("75.00")]
    assert [t.title for t in desc.tasks] == ["Bravo Puzzle", "Alpha Puzzle", "Charlie Puzzle"]


@pytest.mark.asyncio
async def test_unknown_sort_key_falls_back(db_session, catalogue):
    page = await list_tasks(db_session, TaskFilters(sort_by="id; DROP TABLE tasks"))

    assert page.pagination.total_items == 3


@pytest.mark.asyncio
async def test_pagination(db_session, catalogue):
    first = await list_tasks(db_session, TaskFilters(limit=2, sort_by="title", sort_order="asc"))
    second = await list_tasks(db_session, TaskFilters(page=2, limit=2, sort_by="title", sort_order="asc"))

    assert [t.title for t in first.tasks] == ["Alpha Puzzle", "Bravo Puzzle"]
    assert [t.title for t in second.tasks] == ["Charlie Puzzle"]
    assert first.pagination.total_pages == 2
    assert first.pagination.has_next is True
    assert first.pagination.has_prev is False
    assert second.pagination.has_next is False
    assert second.pagination.has_prev is True


@pytest.mark.asyncio
async def test_empty_listing(db_session, engine):
    page = await list_tasks(db_session)

    assert page.tasks == []
    assert page.pagination.total_items == 0
    assert page.pagination.total_pages == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("filters", "field"),
    [
        (TaskFilters(page=0), "page"),
        (TaskFilters(limit=0), "limit"),
        (TaskFilters(limit=101), "limit"),
        (TaskFilters(status="archived"), "status"),
    ],
)
async def test_invalid_filters(db_session, filters, field):
    with pytest.raises(ValidationError) as exc_info:
        await list_tasks(db_session, filters)
    assert exc_info.value.field == field
