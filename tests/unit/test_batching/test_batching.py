"""run_batched / iter_chunks のテスト."""

import asyncio
import math

import pytest

from optinfer.batching import iter_chunks, run_batched
from optinfer.errors import BatchError, ConfigurationError


class _Worker:
    """受け取ったチャンクを記録し, 各要素を10倍して返す."""

    def __init__(self, fail_on_chunk=None):
        self.chunks = []
        self.fail_on_chunk = fail_on_chunk

    async def __call__(self, chunk):
        self.chunks.append(list(chunk))
        if self.fail_on_chunk is not None and len(self.chunks) - 1 == self.fail_on_chunk:
            raise ValueError("worker failed")
        return [item * 10 for item in chunk]


class TestIterChunks:
    """iter_chunks のテスト."""

    def test_splits_contiguously(self):
        """先頭から順に分割し, 最後だけ短くなる."""
        assert list(iter_chunks([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        """空入力ならチャンクも無い."""
        assert list(iter_chunks([], 3)) == []

    def test_invalid_chunk_size(self):
        """chunk_size が0ならエラー."""
        with pytest.raises(ConfigurationError):
            list(iter_chunks([1], 0))


class TestRunBatched:
    """run_batched のテスト."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("length", [0, 1, 3, 4, 9])
    async def test_preserves_order_and_alignment(self, length):
        """output[i] が items[i] に対応し, チャンク数は ceil(n / c)."""
        items = list(range(length))
        worker = _Worker()

        results = await run_batched(items, 3, worker)

        assert results == [i * 10 for i in items]
        assert len(worker.chunks) == math.ceil(length / 3)
        assert [item for chunk in worker.chunks for item in chunk] == items
        assert all(1 <= len(chunk) <= 3 for chunk in worker.chunks)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("chunk_size", [0, -1, True, 2.0, "2"])
    async def test_invalid_chunk_size(self, chunk_size):
        """不正な chunk_size は worker を呼ぶ前にエラー (空入力でも)."""
        worker = _Worker()
        with pytest.raises(ConfigurationError, match="chunk_size"):
            await run_batched([], chunk_size, worker)
        assert worker.chunks == []

    @pytest.mark.asyncio
    async def test_worker_error_propagates(self):
        """worker の例外はそのまま伝播し, 後続チャンクは実行しない."""
        worker = _Worker(fail_on_chunk=1)

        with pytest.raises(ValueError, match="worker failed"):
            await run_batched(list(range(7)), 2, worker)

        assert worker.chunks == [[0, 1], [2, 3]]

    @pytest.mark.asyncio
    async def test_result_length_mismatch(self):
        """worker の結果件数が合わなければ BatchError."""

        async def short_worker(chunk):
            return chunk[:-1] if len(chunk) < 3 else chunk

        with pytest.raises(BatchError) as exc_info:
            await run_batched([1, 2, 3, 4, 5], 3, short_worker)

        assert exc_info.value.chunk_index == 1
        assert exc_info.value.item_index is None

    @pytest.mark.asyncio
    async def test_yields_to_event_loop_between_chunks(self):
        """チャンクの間で他のタスクが実行される."""
        events = []

        async def worker(chunk):
            events.append(("chunk", chunk[0]))
            return chunk

        async def other():
            events.append(("other", None))

        task = asyncio.ensure_future(other())
        await run_batched([1, 2, 3], 1, worker)
        await task

        assert events == [("chunk", 1), ("other", None), ("chunk", 2), ("chunk", 3)]

    @pytest.mark.asyncio
    async def test_accepts_tuple(self):
        """Sequence であれば list 以外も受け付ける."""
        assert await run_batched((1, 2, 3), 2, _Worker()) == [10, 20, 30]
