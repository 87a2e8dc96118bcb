from datetime import datetime, timezone

import shortuuid


def generate_shortuuid() -> str:
    return shortuuid.uuid()


def generate_short_token(length: int = 12) -> str:
    return shortuuid.ShortUUID().random(length=length)


def generate_document_number(prefix: str, *, now: datetime | None = None) -> str:
    """Human-readable document number such as ``SALE-20260214-7XK2QD``."""
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d")
    token = shortuuid.ShortUUID(alphabet="23456789ABCDEFGHJKLMNPQRSTUVWXYZ").random(length=6)
    return f"{prefix}-{stamp}-{token}"
