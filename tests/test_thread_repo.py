from datetime import datetime

import pytest


@pytest.mark.asyncio
async def test_create_thread_returns_stored_record(threads):
    thread = await threads.create_thread(title="Morning check", thread_id="t-1")

    assert thread.thread_id == "t-1"
    assert thread.title == "Morning check"
    assert isinstance(thread.created_at, datetime)
    assert thread.total_tokens == 0
    assert await threads.get_thread("t-1") == thread


@pytest.mark.asyncio
async def test_create_thread_raises_when_row_is_missing(threads, monkeypatch):
    async def vanished(thread_id):
        return None

    monkeypatch.setattr(threads, "get_thread", vanished)

    with pytest.raises(RuntimeError, match="t-2 was not persisted"):
        await threads.create_thread(thread_id="t-2")
