from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from partnertiers.core.errors import UnknownAchievementError
from partnertiers.domain.models import AchievementCategory, AchievementDefinition, PartnerTier


FIRST_CERTIFICATION = "first_certification"
SECOND_CERTIFICATION = "second_certification"
THIRD_CERTIFICATION = "third_certification"
FIRST_OPPORTUNITY = "first_opportunity"
FIVE_OPPORTUNITIES = "five_opportunities"
FIRST_DEAL_WON = "first_deal_won"
TWO_DEALS_WON = "two_deals_won"
QUICK_DOCUMENT_SIGNING = "quick_document_signing"
TRAINING_MODULE_COMPLETE = "training_module_complete"
COMPLETE_PROFILE = "complete_profile"
ATTEND_WEBINAR = "attend_webinar"
REFER_PARTNER = "refer_partner"

# Certification achievements are earned in this order, one per certified employee.
CERTIFICATION_SEQUENCE: tuple[str, ...] = (
    FIRST_CERTIFICATION,
    SECOND_CERTIFICATION,
    THIRD_CERTIFICATION,
)
DEALS_WON_SEQUENCE: tuple[str, ...] = (FIRST_DEAL_WON, TWO_DEALS_WON)


def _definition(
    achievement_id: str,
    category: AchievementCategory,
    points: int,
    tier: PartnerTier,
    *,
    repeatable: bool = False,
    name: str,
    description: str,
    icon: str,
) -> AchievementDefinition:
    return AchievementDefinition(
        id=achievement_id,
        category=category,
        points=points,
        repeatable=repeatable,
        tier=tier,
        name=name,
        description=description,
        icon=icon,
    )


DEFAULT_ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    _definition(
        FIRST_CERTIFICATION, AchievementCategory.CERTIFICATION, 50, PartnerTier.SILVER,
        name="First certification", description="Certify your first employee", icon="Award",
    ),
    _definition(
        SECOND_CERTIFICATION, AchievementCategory.CERTIFICATION, 50, PartnerTier.GOLD,
        name="Second certification", description="Certify your second employee", icon="Award",
    ),
    _definition(
        THIRD_CERTIFICATION, AchievementCategory.CERTIFICATION, 50, PartnerTier.PLATINUM,
        name="Third certification", description="Certify your third employee", icon="Award",
    ),
    _definition(
        FIRST_OPPORTUNITY, AchievementCategory.DEALS, 30, PartnerTier.GOLD,
        name="First opportunity", description="Register your first sales opportunity", icon="TrendingUp",
    ),
    _definition(
        FIVE_OPPORTUNITIES, AchievementCategory.DEALS, 50, PartnerTier.GOLD,
        name="Five opportunities", description="Register 5 sales opportunities", icon="BarChart3",
    ),
    _definition(
        FIRST_DEAL_WON, AchievementCategory.DEALS, 100, PartnerTier.GOLD,
        name="First deal won", description="Close your first won deal", icon="Trophy",
    ),
    _definition(
        TWO_DEALS_WON, AchievementCategory.DEALS, 100, PartnerTier.PLATINUM,
        name="Two deals won", description="Close 2 won deals", icon="Trophy",
    ),
    _definition(
        QUICK_DOCUMENT_SIGNING, AchievementCategory.COMPLIANCE, 10, PartnerTier.BRONZE, repeatable=True,
        name="Quick document signing", description="Sign legal documents within 7 days", icon="CheckCircle",
    ),
    _definition(
        TRAINING_MODULE_COMPLETE, AchievementCategory.TRAINING, 20, PartnerTier.BRONZE, repeatable=True,
        name="Training module complete", description="Complete a training module", icon="BookOpen",
    ),
    _definition(
        COMPLETE_PROFILE, AchievementCategory.ENGAGEMENT, 15, PartnerTier.BRONZE,
        name="Complete profile", description="Fill in 100% of your partner profile", icon="User",
    ),
    _definition(
        ATTEND_WEBINAR, AchievementCategory.TRAINING, 25, PartnerTier.BRONZE, repeatable=True,
        name="Attend webinar", description="Attend a webinar or live event", icon="Video",
    ),
    _definition(
        REFER_PARTNER, AchievementCategory.ENGAGEMENT, 50, PartnerTier.BRONZE, repeatable=True,
        name="Refer a partner", description="Refer another partner who joins", icon="Users",
    ),
)


class AchievementCatalog:
    """Immutable lookup table of achievement definitions.

    Built once from static defaults or the remote rewards document and shared
    read-only by every calculation.
    """

    def __init__(self, definitions: Iterable[AchievementDefinition]) -> None:
        table: dict[str, AchievementDefinition] = {}
        for definition in definitions:
            if definition.id in table:
                raise ValueError(f"duplicate achievement id: {definition.id}")
            table[definition.id] = definition
        self._table: Mapping[str, AchievementDefinition] = MappingProxyType(table)

    def __contains__(self, achievement_id: object) -> bool:
        return achievement_id in self._table

    def __len__(self) -> int:
        return len(self._table)

    def get(self, achievement_id: str) -> AchievementDefinition | None:
        return self._table.get(achievement_id)

    def require(self, achievement_id: str) -> AchievementDefinition:
        definition = self._table.get(achievement_id)
        if definition is None:
            raise UnknownAchievementError(achievement_id)
        return definition

    def by_category(self, category: AchievementCategory) -> list[AchievementDefinition]:
        return [definition for definition in self._table.values() if definition.category == category]

    def all(self) -> list[AchievementDefinition]:
        return list(self._table.values())

    def as_mapping(self) -> Mapping[str, AchievementDefinition]:
        return self._table


def default_catalog() -> AchievementCatalog:
    return AchievementCatalog(DEFAULT_ACHIEVEMENTS)
