# anomaly.py
"""Robust outlier checks for transaction amounts.

Huber's M-estimator caps each point's weight at ``delta / |residual|`` once it
strays more than ``delta`` from the current centre, so a few huge values barely
move the estimate. Only unusually large values are flagged.
"""
import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import date

import numpy as np

logger = logging.getLogger(__name__)

TOLERANCE = 1e-5
MAX_ITERATIONS = 100


@dataclass
class AnomalyResult:
    is_anomaly: bool
    average: float
    scale: float = 0.0


@dataclass
class Transaction:
    date: date
    amount: float
    category: str = None
    payee: str = None


@dataclass
class AnomalyRecord:
    date: date
    message: str
    type: str
    score: float
    read: bool = False


def _huber_weights(residuals, delta):
    magnitude = np.abs(residuals)
    with np.errstate(divide="ignore"):
        return np.where(magnitude <= delta, 1.0, delta / magnitude)


def huber_location(values, delta=5, tol=TOLERANCE, max_iter=MAX_ITERATIONS):
    if delta <= 0:
        raise ValueError(f"delta must be positive, got {delta}")
    data = np.asarray(values, dtype=float)
    mu = float(data.mean())
    # stops quietly at max_iter if not yet converged
    for _ in range(max_iter):
        weights = _huber_weights(data - mu, delta)
        new_mu = float(np.sum(weights * data) / np.sum(weights))
        if abs(mu - new_mu) < tol:
            break
        mu = new_mu
    return mu


def huber_scale(values, delta=5, center=None):
    data = np.asarray(values, dtype=float)
    if center is None:
        center = huber_location(data, delta)
    residuals = data - center
    weights = _huber_weights(residuals, delta)
    return float(np.sqrt(np.sum(weights * residuals ** 2) / np.sum(weights)))


def median(values):
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def flag_anomaly_huber(new_value, historical_values, delta=5, k=2):
    if delta <= 0:
        raise ValueError(f"delta must be positive, got {delta}")
    if len(historical_values) == 0:
        return AnomalyResult(is_anomaly=False, average=0)
    center = huber_location(historical_values, delta)
    scale = huber_scale(historical_values, delta, center=center)
    return AnomalyResult(is_anomaly=bool(new_value > center + k * scale), average=center, scale=scale)


def flag_anomaly_moving_average(current_value, moving_average, threshold_pct=0.2):
    return current_value > moving_average * (1 + threshold_pct)


class AnomalyDetector:
    def __init__(self, store=None, delta=5, k=2, min_history=3):
        self.store = store
        self.delta = delta
        self.k = k
        self.min_history = min_history

    def flag(self, new_value, historical_values):
        return flag_anomaly_huber(new_value, historical_values, self.delta, self.k)

    def scan(self, transactions, lookback=30):
        """Compare each transaction with earlier amounts of the same category."""
        history = defaultdict(lambda: deque(maxlen=lookback))
        records = []
        for txn in sorted(transactions, key=lambda t: t.date):
            magnitude = abs(txn.amount)
            key = txn.category or "uncategorized"
            past = history[key]
            if len(past) >= self.min_history:
                result = self.flag(magnitude, list(past))
                if result.is_anomaly:
                    records.append(self._record(txn, magnitude, key, result))
            past.append(magnitude)
        logger.info(f"Scanned {len(transactions)} transactions, {len(records)} anomalies")
        return records

    def _record(self, txn, magnitude, category, result):
        if result.scale > 0:
            score = (magnitude - result.average) / result.scale
        else:
            # flat history, fall back to a ratio
            score = magnitude / result.average if result.average else magnitude
        label = txn.payee or category
        message = (
            f"Unusually large {category} transaction: {magnitude:.2f} at {label} "
            f"(typical {result.average:.2f})"
        )
        return AnomalyRecord(date=txn.date, message=message, type="huber", score=round(score, 4))

    def record(self, records):
        if self.store is None:
            raise RuntimeError("AnomalyDetector has no store to record into")
        if not records:
            return 0
        return self.store.add_many(records)
