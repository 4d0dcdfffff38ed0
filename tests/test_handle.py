"""Tests for the process-wide store handle."""

import asyncio

import pytest

from mindvault.handle import MindHandle, get_mind, get_mind_handle, reset_mind
from mindvault.store import Mind


@pytest.mark.asyncio
async def test_concurrent_first_use_opens_once(temp_dir, engine_cls, monkeypatch):
    opened = []
    real_open = Mind.open.__func__

    async def counting_open(cls, *args, **kwargs):
        opened.append(kwargs)
        await asyncio.sleep(0.01)
        return await real_open(cls, *args, **kwargs)

    monkeypatch.setattr(Mind, "open", classmethod(counting_open))
    handle = MindHandle(project_dir=temp_dir, engine_cls=engine_cls)

    minds = await asyncio.gather(*(handle.get() for _ in range(5)))

    assert len(opened) == 1
    assert all(m is minds[0] for m in minds)
    assert handle.is_open


@pytest.mark.asyncio
async def test_reset_opens_a_new_store(temp_dir, engine_cls):
    handle = MindHandle(project_dir=temp_dir, engine_cls=engine_cls)
    first = await handle.get()

    handle.reset()
    assert not handle.is_open

    second = await handle.get()
    assert second is not first
    assert second.get_memory_path() == first.get_memory_path()


@pytest.mark.asyncio
async def test_failed_open_is_retried(temp_dir, engine_cls, broken_engine_cls):
    await Mind.open(project_dir=temp_dir, engine_cls=engine_cls)
    handle = MindHandle(project_dir=temp_dir, engine_cls=broken_engine_cls)

    with pytest.raises(Exception, match="Permission denied"):
        await handle.get()
    assert not handle.is_open

    handle._config["engine_cls"] = engine_cls
    assert (await handle.get()).is_initialized()


@pytest.mark.asyncio
async def test_process_wide_handle(temp_dir, engine_cls):
    mind = await get_mind(project_dir=temp_dir, engine_cls=engine_cls)

    assert await get_mind() is mind
    assert get_mind_handle(project_dir="ignored") is get_mind_handle()

    reset_mind()
    assert get_mind_handle() is not None
    assert not get_mind_handle().is_open
