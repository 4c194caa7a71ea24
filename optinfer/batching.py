"""入力列を固定サイズのチャンクに分けて順番に処理するバッチランナー."""

import asyncio
from typing import Awaitable, Callable, Iterator, List, Sequence, TypeVar

from optinfer.errors import BatchError, ConfigurationError

ItemT = TypeVar("ItemT")
ResultT = TypeVar("ResultT")

ChunkWorker = Callable[[List[ItemT]], Awaitable[Sequence[ResultT]]]


def _validate_chunk_size(chunk_size: int) -> None:
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
        raise ConfigurationError(
            f"chunk_size は1以上の整数である必要があります (値: {chunk_size!r})"
        )


def iter_chunks(items: Sequence[ItemT], chunk_size: int) -> Iterator[List[ItemT]]:
    """入力列を先頭から chunk_size 件ずつの連続したチャンクに分割する.

    Args:
        items: 入力列.
        chunk_size: 1チャンクあたりの最大件数.

    Yields:
        元の順序を保ったチャンク. 最後のチャンクは短くなり得る.

    Raises:
        ConfigurationError: chunk_size が1未満の場合.
    """
    _validate_chunk_size(chunk_size)
    for start in range(0, len(items), chunk_size):
        yield list(items[start : start + chunk_size])


async def run_batched(
    items: Sequence[ItemT],
    chunk_size: int,
    worker: ChunkWorker,
) -> List[ResultT]:
    """チャンク単位で worker を逐次実行し, 結果を入力順に連結して返す.

    チャンクは並列には実行しない. 各チャンクの後に `asyncio.sleep(0)` で
    イベントループへ制御を返し, 他の待機中タスクを進められるようにする.

    Args:
        items: 入力列.
        chunk_size: 1チャンクあたりの最大件数.
        worker: チャンクを受け取り, 同じ長さ・同じ順序の結果を返す非同期関数.

    Returns:
        output[i] が items[i] に対応する結果リスト.

    Raises:
        ConfigurationError: chunk_size が1未満の場合.
        BatchError: worker の返した件数がチャンクと一致しない場合.
        Exception: worker の例外はそのまま伝播し, 部分結果は返さない.
    """
    _validate_chunk_size(chunk_size)

    results: List[ResultT] = []
    for chunk_index, chunk in enumerate(iter_chunks(items, chunk_size)):
        chunk_results = list(await worker(chunk))
        if len(chunk_results) != len(chunk):
            raise BatchError(
                f"worker の結果件数 ({len(chunk_results)}) が"
                f"チャンク件数 ({len(chunk)}) と一致しません",
                chunk_index=chunk_index,
            )
        results.extend(chunk_results)
        await asyncio.sleep(0)

    return results
