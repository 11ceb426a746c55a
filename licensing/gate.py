"""
Feature gate: turns validator state into one of four feature levels and maps
levels to capability sets.

Decision order:
1. Development bypass -> FULL
2. Primary premium AND secondary corroborates AND no tamper flag
   -> GRACE when in a grace warning, else FULL
3. Anything else -> time decay from the first recorded premium feature use:
       never used -> BASIC, <7 days -> FULL, 7-13 -> GRACE,
       14-29 -> LIMITED, >=30 -> BASIC

The level is memoised for the lifetime of the gate (one request); call
reset() to force re-evaluation.
"""

import logging
from typing import Dict, FrozenSet, Optional, Tuple

from licensing.config import LicensingSettings
from licensing.models import DegradationInfo, FeatureLevel
from licensing.primary import PrimaryValidator
from licensing.secondary import SecondaryValidator

logger = logging.getLogger(__name__)

PREMIUM_FEATURES: Tuple[str, ...] = (
    "unlimited_instances",
    "advanced_analytics",
    "custom_branding",
    "file_uploads",
    "advanced_rules",
    "priority_support",
    "api_access",
    "export_data",
    "custom_css",
    "webhooks",
)

GRACE_FEATURES: Tuple[str, ...] = (
    "unlimited_instances",
    "custom_branding",
    "api_access",
    "export_data",
)

LIMITED_FEATURES: Tuple[str, ...] = (
    "custom_branding",
    "export_data",
)

LEVEL_FEATURES: Dict[FeatureLevel, Tuple[str, ...]] = {
    FeatureLevel.FULL: PREMIUM_FEATURES,
    FeatureLevel.GRACE: GRACE_FEATURES,
    FeatureLevel.LIMITED: LIMITED_FEATURES,
    FeatureLevel.BASIC: (),
}

FULL_UNTIL_DAYS = 7
GRACE_UNTIL_DAYS = 14
LIMITED_UNTIL_DAYS = 30


def level_for_days(days_since_first_use: Optional[float]) -> FeatureLevel:
    """Time-decay level for a given number of days since first premium use."""
    if days_since_first_use is None:
        return FeatureLevel.BASIC
    if days_since_first_use < FULL_UNTIL_DAYS:
        return FeatureLevel.FULL
    if days_since_first_use < GRACE_UNTIL_DAYS:
        return FeatureLevel.GRACE
    if days_since_first_use < LIMITED_UNTIL_DAYS:
        return FeatureLevel.LIMITED
    return FeatureLevel.BASIC


def features_for_level(level: FeatureLevel) -> FrozenSet[str]:
    return frozenset(LEVEL_FEATURES.get(level, ()))


class FeatureGate:
    def __init__(
        self,
        primary: PrimaryValidator,
        secondary: SecondaryValidator,
        settings: LicensingSettings,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.settings = settings
        self._level: Optional[FeatureLevel] = None

    def get_level(self) -> FeatureLevel:
        if self._level is None:
            self._level = self._evaluate()
        return self._level

    def _evaluate(self) -> FeatureLevel:
        if self.settings.dev_mode:
            return FeatureLevel.FULL

        if self.primary.is_premium():
            if self.secondary.is_corroborated() and not self.secondary.is_tampered():
                return FeatureLevel.GRACE if self.primary.is_in_grace() else FeatureLevel.FULL
            logger.debug("Premium claim not corroborated; using time-based level")

        return self._degraded_level()

    def _degraded_level(self) -> FeatureLevel:
        return level_for_days(self.secondary.days_since_first_premium_use())

    def reset(self) -> None:
        self._level = None

    def has_feature(self, name: str) -> bool:
        return name in features_for_level(self.get_level())

    def has_premium(self) -> bool:
        return self.get_level() in (FeatureLevel.FULL, FeatureLevel.GRACE)

    def is_degraded(self) -> bool:
        return self.get_level() in (FeatureLevel.LIMITED, FeatureLevel.BASIC)

    def available_features(self) -> Tuple[str, ...]:
        return LEVEL_FEATURES[self.get_level()]

    @staticmethod
    def all_premium_features() -> Tuple[str, ...]:
        return PREMIUM_FEATURES

    def mark_feature_used(self, name: str) -> None:
        """Record the first premium feature use. Idempotent; ignores non-premium names."""
        if name in PREMIUM_FEATURES:
            self.secondary.track_feature_use()

    def get_degradation_info(self) -> DegradationInfo:
        level = self.get_level()
        if level == FeatureLevel.FULL:
            return DegradationInfo(degraded=False, level=level.value)

        days = self.secondary.days_since_first_premium_use() or 0

        if level == FeatureLevel.GRACE:
            return DegradationInfo(
                degraded=True,
                level=level.value,
                days_since_init=days,
                message="License verification pending. Some features may be limited soon.",
                days_until_limited=max(0, GRACE_UNTIL_DAYS - days),
            )
        if level == FeatureLevel.LIMITED:
            return DegradationInfo(
                degraded=True,
                level=level.value,
                days_since_init=days,
                message="License not verified. Premium features are limited.",
                days_until_basic=max(0, LIMITED_UNTIL_DAYS - days),
            )
        return DegradationInfo(
            degraded=True,
            level=level.value,
            days_since_init=days,
            message="Premium features unavailable. Please activate your license.",
        )
