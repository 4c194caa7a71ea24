"""PerformanceMonitor のテスト."""

import json
import logging

import pytest

from optinfer.config import AlertConfig
from optinfer.errors import ConfigurationError
from optinfer.inference import InferenceMetrics
from optinfer.monitoring import AlertType, PerformanceMonitor


class _Clock:
    """手動で進める時計 (ミリ秒)."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _metrics(inference_ms: float = 8.0, total_ms: float = 10.0) -> InferenceMetrics:
    return InferenceMetrics(
        total_time_ms=total_ms,
        batch_size=1,
        device_type="cpu",
        preprocessing_time_ms=1.0,
        inference_time_ms=inference_ms,
        postprocessing_time_ms=1.0,
    )


@pytest.fixture(autouse=True)
def _fixed_memory(monkeypatch):
    """メモリ使用量を固定値にする."""
    monkeypatch.setattr(
        "optinfer.monitoring.performance_monitor.get_memory_usage_mb", lambda: 100.0
    )
    monkeypatch.setattr(
        "optinfer.monitoring.performance_monitor.get_gpu_memory_usage_mb", lambda: None
    )


class TestRecordMetrics:
    """record_metrics のテスト."""

    def test_invalid_max_metrics_count(self):
        """保持上限は1以上."""
        with pytest.raises(ConfigurationError):
            PerformanceMonitor(max_metrics_count=0)

    def test_record_adds_timestamp_and_memory(self):
        """タイムスタンプとメモリ使用量を付けて記録する."""
        monitor = PerformanceMonitor(clock_ms=_Clock(1234.0))

        record = monitor.record_metrics(_metrics())

        assert record is not None
        assert record.timestamp_ms == 1234.0
        assert record.memory_usage_mb == 100.0
        assert record.gpu_memory_usage_mb is None
        assert record.throughput_items_per_sec == pytest.approx(100.0)
        assert monitor.get_metrics() == [record]

    def test_cached_metrics_are_ignored(self):
        """キャッシュヒットの計測値は記録しない."""
        monitor = PerformanceMonitor()

        assert monitor.record_metrics(_metrics().as_cached(0.1)) is None
        assert monitor.get_metrics() == []

    def test_oldest_records_are_dropped(self):
        """上限を超えると古いものから捨てる."""
        monitor = PerformanceMonitor(max_metrics_count=3)

        for i in range(5):
            monitor.record_metrics(_metrics(inference_ms=float(i)))

        assert [r.inference_time_ms for r in monitor.get_metrics()] == [2.0, 3.0, 4.0]


class TestStatistics:
    """calculate_statistics のテスト."""

    def test_empty(self):
        """記録が無ければ全て0."""
        stats = PerformanceMonitor().calculate_statistics()
        assert stats.count == 0
        assert stats.avg_inference_time_ms == 0.0
        assert stats.avg_gpu_memory_usage_mb is None

    def test_basic_statistics(self):
        """平均・最小・最大・スループットを計算する."""
        clock = _Clock()
        monitor = PerformanceMonitor(clock_ms=clock)
        for i, inference_ms in enumerate([2.0, 4.0, 6.0]):
            clock.now = i * 100.0
            monitor.record_metrics(_metrics(inference_ms=inference_ms, total_ms=10.0))

        stats = monitor.calculate_statistics()

        assert stats.count == 3
        assert stats.avg_inference_time_ms == pytest.approx(4.0)
        assert stats.min_inference_time_ms == 2.0
        assert stats.max_inference_time_ms == 6.0
        assert stats.avg_total_time_ms == pytest.approx(10.0)
        assert stats.avg_preprocessing_time_ms == pytest.approx(1.0)
        assert stats.avg_throughput_items_per_sec == pytest.approx(100.0)
        assert stats.avg_memory_usage_mb == pytest.approx(100.0)
        assert stats.duration_ms == 200.0

    def test_percentiles_pick_observed_values(self):
        """p95/p99 は補間せず観測値から選ぶ."""
        monitor = PerformanceMonitor()
        for value in range(100, 0, -1):
            monitor.record_metrics(_metrics(inference_ms=float(value)))

        stats = monitor.calculate_statistics()

        assert stats.p95_inference_time_ms == 96.0
        assert stats.p99_inference_time_ms == 100.0

    def test_time_range(self):
        """time_range_ms 指定時は範囲内の記録のみ使う."""
        clock = _Clock()
        monitor = PerformanceMonitor(clock_ms=clock)
        for now, inference_ms in [(0.0, 2.0), (1000.0, 4.0), (2000.0, 6.0)]:
            clock.now = now
            monitor.record_metrics(_metrics(inference_ms=inference_ms))

        clock.now = 2500.0
        stats = monitor.calculate_statistics(time_range_ms=1000.0)

        assert stats.count == 1
        assert stats.avg_inference_time_ms == 6.0


class TestAlerts:
    """アラートのテスト."""

    def test_threshold_alerts(self):
        """閾値を超えた項目ごとにアラートを発行する."""
        monitor = PerformanceMonitor(
            alert_config=AlertConfig(
                max_inference_time_ms=5.0,
                max_total_time_ms=50.0,
                max_memory_usage_mb=50.0,
                min_throughput_items_per_sec=200.0,
            )
        )

        monitor.record_metrics(_metrics(inference_ms=8.0, total_ms=10.0))

        alerts = {a.type: a for a in monitor.get_alerts()}
        assert set(alerts) == {
            AlertType.INFERENCE_TIME,
            AlertType.MEMORY_USAGE,
            AlertType.THROUGHPUT,
        }
        assert alerts[AlertType.INFERENCE_TIME].actual_value == 8.0
        assert alerts[AlertType.INFERENCE_TIME].threshold == 5.0
        assert alerts[AlertType.THROUGHPUT].actual_value == pytest.approx(100.0)

    def test_no_alerts_without_thresholds(self):
        """閾値未設定ならアラートは出ない."""
        monitor = PerformanceMonitor()
        monitor.record_metrics(_metrics(inference_ms=1000.0))
        assert monitor.get_alerts() == []

    def test_alert_history_is_bounded(self):
        """アラートも max_metrics_count 件までで, 古いものから捨てる."""
        monitor = PerformanceMonitor(
            max_metrics_count=2, alert_config=AlertConfig(max_inference_time_ms=5.0)
        )

        for inference_ms in (6.0, 7.0, 8.0):
            monitor.record_metrics(_metrics(inference_ms=inference_ms))

        assert [a.actual_value for a in monitor.get_alerts()] == [7.0, 8.0]

    def test_handler_and_removal(self):
        """ハンドラーへ通知し, 解除後は通知しない."""
        monitor = PerformanceMonitor(alert_config=AlertConfig(max_inference_time_ms=5.0))
        received = []
        remove = monitor.on_alert(received.append)

        monitor.record_metrics(_metrics(inference_ms=8.0))
        remove()
        remove()
        monitor.record_metrics(_metrics(inference_ms=9.0))

        assert [a.actual_value for a in received] == [8.0]
        assert len(monitor.get_alerts()) == 2

    def test_failing_handler_does_not_block_others(self, caplog):
        """1つのハンドラーが失敗しても他へ通知し, ログに残す."""
        monitor = PerformanceMonitor(alert_config=AlertConfig(max_inference_time_ms=5.0))
        received = []

        def broken(alert):
            raise RuntimeError("handler failed")

        monitor.on_alert(broken)
        monitor.on_alert(received.append)

        with caplog.at_level(logging.WARNING, logger="optinfer.monitoring"):
            monitor.record_metrics(_metrics(inference_ms=8.0))

        assert len(received) == 1
        assert any("アラートハンドラー" in r.message for r in caplog.records)


class TestExport:
    """出力のテスト."""

    def test_clear(self):
        """計測値とアラートを削除する."""
        monitor = PerformanceMonitor(alert_config=AlertConfig(max_inference_time_ms=5.0))
        monitor.record_metrics(_metrics())

        monitor.clear()

        assert monitor.get_metrics() == []
        assert monitor.get_alerts() == []

    def test_export_as_json(self):
        """計測値・アラート・統計をJSONで返す."""
        monitor = PerformanceMonitor(alert_config=AlertConfig(max_inference_time_ms=5.0))
        monitor.record_metrics(_metrics())

        payload = json.loads(monitor.export_as_json())

        assert len(payload["metrics"]) == 1
        assert payload["alerts"][0]["type"] == "inference_time"
        assert payload["statistics"]["count"] == 1
        assert "timestamp" in payload

    def test_save_to_file(self, tmp_path):
        """JSONファイルへ保存する."""
        monitor = PerformanceMonitor()
        monitor.record_metrics(_metrics())
        output = tmp_path / "reports" / "performance.json"

        saved = monitor.save_to_file(output)

        assert saved == output
        payload = json.loads(output.read_text(encoding="utf-8"))
        assert payload["statistics"]["count"] == 1
        assert payload["metrics"][0]["device_type"] == "cpu"
