from __future__ import annotations


class PartnerTiersError(Exception):
    """Base error for partnertiers."""


class UnknownAchievementError(PartnerTiersError):
    """Achievement id is not present in the loaded catalog."""

    def __init__(self, achievement_id: str) -> None:
        super().__init__(f"unknown achievement: {achievement_id}")
        self.achievement_id = achievement_id


class PartnerNotFoundError(PartnerTiersError):
    """Partner record does not exist in the store."""

    def __init__(self, partner_id: str) -> None:
        super().__init__(f"partner not found: {partner_id}")
        self.partner_id = partner_id


class StoreUnavailableError(PartnerTiersError):
    """Transport-level failure talking to the key-value store."""


class AchievementSideEffectError(PartnerTiersError):
    """Awarding achievements after a rating event failed; never surfaced to event writers."""


class RewardsConfigError(PartnerTiersError):
    """Rewards configuration document is missing fields or inconsistent."""


class TierChangeError(PartnerTiersError):
    """Requested tier change is not allowed."""


class RenewalInProgressError(PartnerTiersError):
    """Another run holds the partner's renewal lease."""

    def __init__(self, partner_id: str) -> None:
        super().__init__(f"renewal already in progress: {partner_id}")
        self.partner_id = partner_id
