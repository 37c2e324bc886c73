from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError
from redis.asyncio import Redis

from partnertiers.domain.models import Certification, Deal, LegalDocument, LegalSignature
from partnertiers.persistence import keys
from partnertiers.persistence.redis import from_hash, store_call, to_hash


logger = logging.getLogger(__name__)


# Deals, certifications and legal records are written by the portal; the engine only reads
# them to compute rating factors. The writers below exist for seeding and tests.


async def _load_hashes(redis: Redis, hash_keys: list[str]) -> list[dict[str, str]]:
    if not hash_keys:
        return []
    with store_call("load_hashes"):
        return list(await asyncio.gather(*(redis.hgetall(key) for key in hash_keys)))


def _parse_all(model, rows: list[dict[str, str]], label: str) -> list:
    parsed = []
    for row in rows:
        try:
            item = from_hash(model, row)
        except ValidationError:
            logger.warning("history_record_invalid kind=%s id=%s", label, row.get("id"))
            continue
        if item is not None:
            parsed.append(item)
    return parsed


async def list_partner_deals(redis: Redis, partner_id: str) -> list[Deal]:
    with store_call("list_partner_deals"):
        deal_ids = await redis.zrange(keys.partner_deals(partner_id), 0, -1)
    rows = await _load_hashes(redis, [keys.deal(deal_id) for deal_id in deal_ids])
    return _parse_all(Deal, rows, "deal")


async def list_user_certifications(redis: Redis, user_id: str) -> list[Certification]:
    with store_call("list_user_certifications"):
        cert_ids = await redis.smembers(keys.user_certifications(user_id))
    rows = await _load_hashes(redis, [keys.certification(cert_id) for cert_id in sorted(cert_ids)])
    return _parse_all(Certification, rows, "certification")


async def list_legal_documents(redis: Redis) -> list[LegalDocument]:
    with store_call("list_legal_documents"):
        doc_ids = await redis.smembers(keys.legal_documents())
    rows = await _load_hashes(redis, [keys.legal_document(doc_id) for doc_id in sorted(doc_ids)])
    return _parse_all(LegalDocument, rows, "legal_document")


async def list_user_signatures(redis: Redis, user_id: str) -> list[LegalSignature]:
    with store_call("list_user_signatures"):
        signature_ids = await redis.smembers(keys.user_signatures(user_id))
    rows = await _load_hashes(redis, [keys.legal_signature(sig_id) for sig_id in sorted(signature_ids)])
    return _parse_all(LegalSignature, rows, "legal_signature")


async def save_deal(redis: Redis, deal: Deal) -> None:
    score = deal.created_at.timestamp() * 1000 if deal.created_at else 0
    with store_call("save_deal"):
        async with redis.pipeline(transaction=True) as pipe:
            pipe.hset(keys.deal(deal.id), mapping=to_hash(deal))
            pipe.zadd(keys.partner_deals(deal.partner_id), {deal.id: score})
            await pipe.execute()


async def save_certification(redis: Redis, certification: Certification) -> None:
    with store_call("save_certification"):
        async with redis.pipeline(transaction=True) as pipe:
            pipe.hset(keys.certification(certification.id), mapping=to_hash(certification))
            pipe.sadd(keys.user_certifications(certification.user_id), certification.id)
            await pipe.execute()


async def save_legal_document(redis: Redis, document: LegalDocument) -> None:
    with store_call("save_legal_document"):
        async with redis.pipeline(transaction=True) as pipe:
            pipe.hset(keys.legal_document(document.id), mapping=to_hash(document))
            pipe.sadd(keys.legal_documents(), document.id)
            await pipe.execute()


async def save_signature(redis: Redis, signature: LegalSignature) -> None:
    with store_call("save_signature"):
        async with redis.pipeline(transaction=True) as pipe:
            pipe.hset(keys.legal_signature(signature.id), mapping=to_hash(signature))
            pipe.sadd(keys.user_signatures(signature.user_id), signature.id)
            await pipe.execute()
