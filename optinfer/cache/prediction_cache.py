"""挿入順で追い出す上限付き予測キャッシュ."""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, List, TypeVar

from optinfer.errors import ConfigurationError

from .serializer import KeySerializer, serialize_key

InputT = TypeVar("InputT")
ResultT = TypeVar("ResultT")

logger = logging.getLogger("optinfer.cache")


@dataclass(frozen=True)
class CacheStats:
    """キャッシュの統計値."""

    hits: int
    misses: int
    evictions: int
    size: int
    max_size: int

    @property
    def hit_rate(self) -> float:
        """ヒット率を返す. 参照が無い場合は0.0."""
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class PredictionCache(Generic[InputT, ResultT]):
    """入力ごとの推論結果を最大 max_size 件まで保持するキャッシュ.

    追い出しは挿入順 (最も古く挿入されたキーから) で, 参照では順序を更新しない.
    計算に失敗した入力は保存しない. 同一キーへの同時ミスは重複排除せず,
    それぞれが計算して後勝ちで保存される.
    """

    def __init__(
        self,
        max_size: int = 100,
        serializer: KeySerializer = serialize_key,
    ) -> None:
        """キャッシュを初期化する.

        Args:
            max_size: 保持する最大件数. 1以上.
            serializer: 入力をキー文字列へ変換する関数.

        Raises:
            ConfigurationError: max_size が1未満の場合.
        """
        if isinstance(max_size, bool) or not isinstance(max_size, int) or max_size < 1:
            raise ConfigurationError(
                f"max_size は1以上の整数である必要があります (値: {max_size!r})"
            )
        self._max_size = max_size
        self._serializer = serializer
        self._entries: "OrderedDict[str, ResultT]" = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def max_size(self) -> int:
        """保持する最大件数."""
        return self._max_size

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item: Any) -> bool:
        return self._serializer(item) in self._entries

    def keys(self) -> List[str]:
        """保持中のキーを挿入順で返す."""
        return list(self._entries.keys())

    async def get_or_compute(
        self,
        item: InputT,
        compute_fn: Callable[[InputT], Awaitable[ResultT]],
    ) -> ResultT:
        """キャッシュ済みの結果を返すか, 計算して保存する.

        Args:
            item: 推論入力.
            compute_fn: キャッシュミス時に呼ぶ非同期関数.

        Returns:
            キャッシュ済みまたは新たに計算した結果.

        Raises:
            KeySerializationError: 入力をキーに変換できない場合.
            Exception: compute_fn の例外をそのまま伝播する (保存はしない).
        """
        key = self._serializer(item)
        if key in self._entries:
            self._hits += 1
            logger.debug("cache hit: size=%d", len(self._entries))
            return self._entries[key]

        self._misses += 1
        logger.debug("cache miss: size=%d", len(self._entries))
        result = await compute_fn(item)
        self._store(key, result)
        return result

    def _store(self, key: str, result: ResultT) -> None:
        """結果を保存する. 満杯なら最古の1件を先に追い出す."""
        if key in self._entries:
            # 同時ミスで先に保存された値を上書きする (挿入位置は維持)
            self._entries[key] = result
            return

        if len(self._entries) >= self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug("cache evict: key=%.64s", evicted)
        self._entries[key] = result

    def clear(self) -> None:
        """全エントリを削除する."""
        self._entries.clear()

    def stats(self) -> CacheStats:
        """現在の統計値を返す."""
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            size=len(self._entries),
            max_size=self._max_size,
        )
