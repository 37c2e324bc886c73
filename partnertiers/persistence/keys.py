from __future__ import annotations


# Key layout shared with the portal that writes partners, deals and documents.


def partner(partner_id: str) -> str:
    return f"partner:{partner_id}"


def all_partners() -> str:
    return "partners:all"


def achievements(partner_id: str) -> str:
    return f"partner:achievements:{partner_id}"


def achievement_sequences(partner_id: str) -> str:
    return f"partner:achievements:{partner_id}:seq"


def annual_progress(partner_id: str) -> str:
    return f"partner:{partner_id}:annual:progress"


def rating_events(partner_id: str) -> str:
    return f"partner:{partner_id}:rating:events"


def rating_calculation(partner_id: str) -> str:
    return f"partner:{partner_id}:rating:calculation"


def tier_history(partner_id: str) -> str:
    return f"partner:{partner_id}:tier:history"


def last_login(partner_id: str) -> str:
    return f"partner:{partner_id}:last-login"


def renewal_lock(partner_id: str) -> str:
    return f"partner:{partner_id}:renewal:lock"


def partner_deals(partner_id: str) -> str:
    return f"partner:{partner_id}:deals"


def deal(deal_id: str) -> str:
    return f"deal:{deal_id}"


def user_certifications(user_id: str) -> str:
    return f"user:{user_id}:certifications"


def certification(certification_id: str) -> str:
    return f"certification:{certification_id}"


def legal_documents() -> str:
    return "legal:documents"


def legal_document(document_id: str) -> str:
    return f"legal:document:{document_id}"


def user_signatures(user_id: str) -> str:
    return f"user:{user_id}:signatures"


def legal_signature(signature_id: str) -> str:
    return f"legal:signature:{signature_id}"


def rewards_config_history(key: str, timestamp: str) -> str:
    return f"{key}:history:{timestamp}"
