"""
Tiered retention classification.

Backups are walked newest to oldest. Each one tries to claim a slot in the
daily, weekly and monthly tiers, in that order. A tier accepts the claim if it
still has capacity and nobody in that tier has claimed the backup's period key
yet. The first tier that accepts keeps the backup; a backup no tier accepts is
deleted.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .storage import BackupRecord


logger = logging.getLogger(__name__)

PeriodKeyFunc = Callable[[datetime], str]

TIER_ORDER = ('daily', 'weekly', 'monthly')


def day_key(when: datetime) -> str:
    return when.strftime('%Y-%m-%d')


def week_key(when: datetime) -> str:
    """ISO year and week number, e.g. '2024-03'."""
    iso_year, iso_week, _ = when.isocalendar()
    return f"{iso_year:04d}-{iso_week:02d}"


def month_key(when: datetime) -> str:
    return when.strftime('%Y-%m')


DEFAULT_PERIOD_KEYS: Dict[str, PeriodKeyFunc] = {
    'daily': day_key,
    'weekly': week_key,
    'monthly': month_key,
}


@dataclass
class RetentionTier:
    """One retention tier and the period keys it has claimed."""

    name: str
    capacity: int
    claimed_keys: Set[str] = field(default_factory=set)
    occupied_count: int = 0

    def can_claim(self, key: str) -> bool:
        return self.occupied_count < self.capacity and key not in self.claimed_keys

    def claim(self, key: str):
        self.claimed_keys.add(key)
        self.occupied_count += 1


@dataclass
class RetentionDecision:
    """Outcome of classification: every input record is in exactly one list."""

    kept: List[Tuple[BackupRecord, str]] = field(default_factory=list)
    deleted: List[BackupRecord] = field(default_factory=list)

    @property
    def kept_records(self) -> List[BackupRecord]:
        return [record for record, _ in self.kept]

    @property
    def delete_ids(self) -> Set[datetime]:
        return {record.id for record in self.deleted}


class RetentionClassifier:
    """
    Partitions backups into keep/delete sets under daily/weekly/monthly quotas.
    """

    def __init__(
        self,
        daily: int,
        weekly: int,
        monthly: int,
        period_keys: Optional[Dict[str, PeriodKeyFunc]] = None
    ):
        """
        Initialize classifier.

        Args:
            daily: Daily tier capacity
            weekly: Weekly tier capacity
            monthly: Monthly tier capacity
            period_keys: Optional override of the per-tier period-key
                functions, keyed by tier name
        """
        self.capacities = {'daily': daily, 'weekly': weekly, 'monthly': monthly}
        self.period_keys = dict(DEFAULT_PERIOD_KEYS)
        if period_keys:
            self.period_keys.update(period_keys)

    @classmethod
    def from_config(cls, config) -> 'RetentionClassifier':
        return cls(config.DAILY_KEEP, config.WEEKLY_KEEP, config.MONTHLY_KEEP)

    def classify(self, records: Sequence[BackupRecord]) -> RetentionDecision:
        """
        Decide which backups survive rotation.

        Args:
            records: Backups to classify (any order; processed newest first)

        Returns:
            RetentionDecision with kept (record, tier) pairs and deleted records
        """
        tiers = [RetentionTier(name, self.capacities[name]) for name in TIER_ORDER]
        decision = RetentionDecision()

        for record in sorted(records, key=lambda r: r.id, reverse=True):
            winner = None
            for tier in tiers:
                key = self.period_keys[tier.name](record.id)
                if tier.can_claim(key):
                    tier.claim(key)
                    winner = tier.name
                    break

            if winner is None:
                decision.deleted.append(record)
                logger.debug(f"Retention: {record.name} -> delete")
            else:
                decision.kept.append((record, winner))
                logger.debug(f"Retention: {record.name} -> keep ({winner})")

        return decision
