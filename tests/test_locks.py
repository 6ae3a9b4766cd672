"""Unit tests for billvault.documents.locks — per-name write serialization."""

import asyncio

import pytest

from billvault.documents.locks import NameLocks


class TestNameLocks:
    def setup_method(self):
        self.locks = NameLocks()

    @pytest.mark.asyncio
    async def test_hold_and_release(self):
        async with self.locks.hold("a"):
            assert self.locks.is_locked("a")
        assert not self.locks.is_locked("a")
        assert len(self.locks) == 0

    @pytest.mark.asyncio
    async def test_same_name_serialized_in_order(self):
        order = []

        async def writer(tag, pause):
            async with self.locks.hold("doc"):
                order.append(f"{tag}-in")
                await asyncio.sleep(pause)
                order.append(f"{tag}-out")

        await asyncio.gather(writer("first", 0.01), writer("second", 0))
        assert order == ["first-in", "first-out", "second-in", "second-out"]

    @pytest.mark.asyncio
    async def test_names_independent(self):
        async with self.locks.hold("a"):
            async with self.locks.hold("b"):
                assert self.locks.is_locked("a")
                assert self.locks.is_locked("b")

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        with pytest.raises(RuntimeError):
            async with self.locks.hold("a"):
                raise RuntimeError("boom")
        assert not self.locks.is_locked("a")
        assert len(self.locks) == 0
