"""
Tests for deferred conversation auto-titling
"""
import asyncio

import pytest

from config.settings import DEFAULT_CONVERSATION_TITLE
from jobs.auto_title import AutoTitleScheduler
from services.conversation_service import ConversationService

LONG_QUESTION = "How much urea should I apply to my rice paddy in the monsoon season?"


async def add_first_message(db, conversation_id, text=LONG_QUESTION):
    await ConversationService(db).append_user_message(conversation_id, text)
    await db.commit()


@pytest.mark.asyncio
async def test_title_is_truncated_first_message(test_db, session_factory, conversation):
    await add_first_message(test_db, conversation.id)
    scheduler = AutoTitleScheduler(session_factory, delay_seconds=0)

    assert await scheduler.schedule(conversation.id) is True

    await test_db.refresh(conversation)
    assert conversation.title == LONG_QUESTION[:40] + "..."


@pytest.mark.asyncio
async def test_short_message_used_as_is(test_db, session_factory, conversation):
    await add_first_message(test_db, conversation.id, "Tomato blight")
    scheduler = AutoTitleScheduler(session_factory, delay_seconds=0)

    await scheduler.schedule(conversation.id)

    await test_db.refresh(conversation)
    assert conversation.title == "Tomato blight"


@pytest.mark.asyncio
async def test_title_applied_exactly_once(test_db, session_factory, conversation):
    await add_first_message(test_db, conversation.id)
    scheduler = AutoTitleScheduler(session_factory, delay_seconds=0)

    assert await scheduler.schedule(conversation.id) is True
    await ConversationService(test_db).append_user_message(conversation.id, "A different later question")
    await test_db.commit()
    assert await scheduler.schedule(conversation.id) is False

    await test_db.refresh(conversation)
    assert conversation.title == LONG_QUESTION[:40] + "..."


@pytest.mark.asyncio
async def test_pending_task_is_reused(test_db, session_factory, conversation):
    await add_first_message(test_db, conversation.id)
    scheduler = AutoTitleScheduler(session_factory, delay_seconds=0.05)

    first = scheduler.schedule(conversation.id)
    second = scheduler.schedule(conversation.id)

    assert first is second
    assert scheduler.pending(conversation.id) is first
    await first
    assert scheduler.pending(conversation.id) is None


@pytest.mark.asyncio
async def test_manual_rename_during_delay_is_kept(test_db, session_factory, conversation):
    await add_first_message(test_db, conversation.id)
    scheduler = AutoTitleScheduler(session_factory, delay_seconds=0.05)

    task = scheduler.schedule(conversation.id)
    await ConversationService(test_db).rename_conversation(conversation.id, "North field")
    await test_db.commit()

    assert await task is False
    await test_db.refresh(conversation)
    assert conversation.title == "North field"


@pytest.mark.asyncio
async def test_cancel_stops_pending_rename(test_db, session_factory, conversation):
    await add_first_message(test_db, conversation.id)
    scheduler = AutoTitleScheduler(session_factory, delay_seconds=10)

    task = scheduler.schedule(conversation.id)
    assert scheduler.cancel(conversation.id) is True

    with pytest.raises(asyncio.CancelledError):
        await task
    assert scheduler.pending(conversation.id) is None
    assert scheduler.cancel(conversation.id) is False
    await test_db.refresh(conversation)
    assert conversation.title == DEFAULT_CONVERSATION_TITLE


@pytest.mark.asyncio
async def test_cancel_all(test_db, session_factory, free_user):
    service = ConversationService(test_db)
    first = await service.create_conversation(free_user.id)
    second = await service.create_conversation(free_user.id)
    await test_db.commit()
    scheduler = AutoTitleScheduler(session_factory, delay_seconds=10)

    tasks = [scheduler.schedule(first.id), scheduler.schedule(second.id)]

    assert scheduler.cancel_all() == 2
    results = await asyncio.gather(*tasks, return_exceptions=True)
    assert all(isinstance(r, asyncio.CancelledError) for r in results)


@pytest.mark.asyncio
async def test_no_user_message_leaves_title(test_db, session_factory, conversation):
    scheduler = AutoTitleScheduler(session_factory, delay_seconds=0)

    assert await scheduler.schedule(conversation.id) is False

    await test_db.refresh(conversation)
    assert conversation.title == DEFAULT_CONVERSATION_TITLE
