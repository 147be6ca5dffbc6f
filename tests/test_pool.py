import asyncio
import logging

from tftp.transfer.pool import SessionPool


def test_spawn_tracks_until_done():
    async def run():
        pool = SessionPool(max_sessions=2)
        gate = asyncio.Event()

        async def session():
            await gate.wait()
            return 'done'

        first = pool.spawn(session(), name='first')
        pool.spawn(session())
        assert pool.active == 2
        assert pool.is_full

        gate.set()
        await pool.wait()
        await asyncio.sleep(0)
        return pool, first

    pool, first = asyncio.run(run())
    assert pool.active == 0
    assert not pool.is_full
    assert first.result() == 'done'
    assert first.get_name() == 'first'


def test_crashed_session_is_logged_and_discarded(caplog):
    async def run():
        pool = SessionPool()

        async def broken():
            raise RuntimeError("boom")

        pool.spawn(broken(), name='broken')
        await pool.wait()
        await asyncio.sleep(0)
        return pool

    with caplog.at_level(logging.ERROR, logger='tftp.transfer.pool'):
        pool = asyncio.run(run())

    assert pool.active == 0
    assert "broken crashed" in caplog.text


def test_shutdown_cancels_sessions():
    async def run():
        pool = SessionPool()
        task = pool.spawn(asyncio.sleep(60))
        await asyncio.sleep(0)
        await pool.shutdown()
        await asyncio.sleep(0)
        return pool, task

    pool, task = asyncio.run(run())
    assert task.cancelled()
    assert pool.active == 0
