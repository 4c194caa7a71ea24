"""optinfer.cache: 予測キャッシュとキー生成."""

from .prediction_cache import CacheStats, PredictionCache
from .serializer import KeySerializer, serialize_key

__all__ = ["CacheStats", "KeySerializer", "PredictionCache", "serialize_key"]
