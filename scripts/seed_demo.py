from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from partnertiers.core.config import get_settings
from partnertiers.domain.models import (
    Certification,
    CertificationStatus,
    Deal,
    DealStatus,
    LegalDocument,
    LegalSignature,
    Partner,
    PartnerTier,
)
from partnertiers.persistence.redis import create_redis
from partnertiers.persistence.repos import history as history_repo
from partnertiers.persistence.repos.partners import create_partner, get_partner


@dataclass(frozen=True)
class DemoPartner:
    # Deterministic ids keep the seed idempotent.
    partner_id: str
    user_id: str
    name: str
    tier: PartnerTier
    age_days: int
    won_deals: int
    certifications: int


DEMO_PARTNERS: tuple[DemoPartner, ...] = (
    DemoPartner("p_demo_bronze", "u_demo_bronze", "Bronze Demo Co", PartnerTier.BRONZE, 30, 0, 0),
    DemoPartner("p_demo_silver", "u_demo_silver", "Silver Demo Co", PartnerTier.SILVER, 200, 1, 1),
    # Past its anniversary so the next renewal run picks it up.
    DemoPartner("p_demo_gold", "u_demo_gold", "Gold Demo Co", PartnerTier.GOLD, 380, 3, 2),
)

DEMO_DOCUMENT = LegalDocument(id="doc_demo_nda", required_for_deals=True, title="Partner NDA")


async def seed() -> None:
    redis = create_redis(get_settings())
    now = datetime.now(timezone.utc)
    try:
        await history_repo.save_legal_document(redis, DEMO_DOCUMENT)
        for demo in DEMO_PARTNERS:
            if await get_partner(redis, demo.partner_id) is not None:
                print(f"partner_exists id={demo.partner_id}")
                continue
            created_at = now - timedelta(days=demo.age_days)
            await create_partner(
                redis,
                Partner(id=demo.partner_id, tier=demo.tier, created_at=created_at, name=demo.name),
            )
            for index in range(demo.won_deals):
                await history_repo.save_deal(
                    redis,
                    Deal(
                        id=f"{demo.partner_id}_deal_{index}",
                        partner_id=demo.partner_id,
                        status=DealStatus.WON,
                        population=250_000,
                        partner_generated_lead=index % 2 == 0,
                        created_at=created_at + timedelta(days=index + 1),
                    ),
                )
            for index in range(demo.certifications):
                await history_repo.save_certification(
                    redis,
                    Certification(
                        id=f"{demo.partner_id}_cert_{index}",
                        user_id=demo.user_id,
                        partner_id=demo.partner_id,
                        status=CertificationStatus.ACTIVE,
                        expires_at=now + timedelta(days=365),
                        issued_at=now - timedelta(days=10),
                    ),
                )
            await history_repo.save_signature(
                redis,
                LegalSignature(
                    id=f"{demo.partner_id}_nda",
                    document_id=DEMO_DOCUMENT.id,
                    user_id=demo.user_id,
                    signed_at=created_at,
                ),
            )
            print(f"partner_seeded id={demo.partner_id} tier={demo.tier.value}")
    finally:
        await redis.aclose()


if __name__ == "__main__":
    asyncio.run(seed())
