from datetime import date, timedelta

import pytest

from anomaly import (
    AnomalyDetector, Transaction, flag_anomaly_huber, flag_anomaly_moving_average,
    huber_location, huber_scale, median,
)


def test_flags_large_value_against_flat_history():
    result = flag_anomaly_huber(1000, [100, 100, 100, 100, 100], delta=5, k=2)
    assert result.is_anomaly
    assert result.average == pytest.approx(100)


def test_empty_history_is_never_anomalous():
    result = flag_anomaly_huber(100, [])
    assert not result.is_anomaly
    assert result.average == 0


def test_only_upward_deviations_are_flagged():
    assert not flag_anomaly_huber(1, [100, 102, 98, 101, 99]).is_anomaly


def test_value_within_spread_is_not_flagged():
    assert not flag_anomaly_huber(103, [100, 104, 96, 102, 98]).is_anomaly


def test_location_resists_outliers():
    data = [10, 11, 9, 10, 12, 10, 500]
    assert huber_location(data, delta=5) < sum(data) / len(data)
    assert huber_location(data, delta=5) == pytest.approx(11.17, abs=0.05)


def test_scale_is_zero_for_constant_data():
    assert huber_scale([42, 42, 42]) == 0.0


@pytest.mark.parametrize("delta", [0, -1])
def test_non_positive_delta_is_rejected(delta):
    with pytest.raises(ValueError):
        flag_anomaly_huber(100, [100, 101, 99], delta=delta)
    with pytest.raises(ValueError):
        huber_location([1, 2, 3], delta=delta)


def test_iteration_cap_stops_quietly():
    assert huber_location([0, 0, 100], delta=1, max_iter=1) == pytest.approx(20.0)
    assert huber_location([0, 0, 100], delta=1) < 20.0


def test_median():
    assert median([]) == 0
    assert median([3, 1, 2]) == 2
    assert median([4, 1, 3, 2]) == 2.5


def test_moving_average_threshold():
    assert flag_anomaly_moving_average(121, 100)
    assert not flag_anomaly_moving_average(120, 100)
    assert flag_anomaly_moving_average(151, 100, threshold_pct=0.5)


def test_scan_flags_outlier_per_category():
    start = date(2024, 6, 1)
    feed = [Transaction(start + timedelta(days=i), -50 - i % 3, "groceries", "Market") for i in range(6)]
    feed.append(Transaction(start + timedelta(days=7), -900, "groceries", "Market"))
    feed.append(Transaction(start + timedelta(days=8), -900, "rent"))

    records = AnomalyDetector().scan(feed)

    assert len(records) == 1
    assert records[0].date == start + timedelta(days=7)
    assert records[0].type == "huber"
    assert records[0].score > 2
    assert not records[0].read
    assert "Market" in records[0].message


def test_record_persists_through_store(stores):
    detector = AnomalyDetector(store=stores.anomalies)
    feed = [Transaction(date(2024, 6, d), 20, "coffee") for d in range(1, 6)]
    feed.append(Transaction(date(2024, 6, 6), 200, "coffee"))

    assert detector.record(detector.scan(feed)) == 1
    [row] = stores.anomalies.list_all()
    assert row.date == date(2024, 6, 6)
    assert row.type == "huber"
    assert row.score == pytest.approx(10.0)
    assert not row.read


def test_record_without_store_raises():
    with pytest.raises(RuntimeError):
        AnomalyDetector().record([])
