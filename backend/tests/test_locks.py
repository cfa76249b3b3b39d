import asyncio

from clubrank.locks import KeyedLocks


def test_same_name_is_serialized_and_released():
    locks = KeyedLocks()
    events: list[str] = []

    async def worker(tag: str):
        async with locks.hold("match:1"):
            events.append(f"{tag}-in")
            await asyncio.sleep(0)
            events.append(f"{tag}-out")

    async def run():
        await asyncio.gather(worker("a"), worker("b"))

    asyncio.run(run())

    assert events == ["a-in", "a-out", "b-in", "b-out"]
    assert len(locks) == 0


def test_overlapping_sets_do_not_deadlock():
    locks = KeyedLocks()

    async def worker(names):
        for _ in range(5):
            async with locks.hold(*names):
                await asyncio.sleep(0)

    async def run():
        await asyncio.wait_for(
            asyncio.gather(worker(["x", "y"]), worker(["y", "x"]), worker(["y", "z", "x"])),
            timeout=5,
        )

    asyncio.run(run())
    assert len(locks) == 0


def test_lock_is_released_on_error():
    locks = KeyedLocks()

    async def run():
        try:
            async with locks.hold("k"):
                assert locks.locked("k")
                raise ValueError("boom")
        except ValueError:
            pass
        return locks.locked("k")

    assert asyncio.run(run()) is False
    assert len(locks) == 0
