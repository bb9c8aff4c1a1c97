from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

import requests
import structlog

from app.core.http.platform_client import PlatformClient


logger = structlog.get_logger(__name__)


class EffectKind(str, Enum):
    notify_customer = "notify_customer"
    notify_role = "notify_role"
    recalculate_commission = "recalculate_commission"


@dataclass(frozen=True)
class PostCommitEffect:
    """Something to tell the rest of the platform once the payment is committed."""

    kind: EffectKind
    target: str
    event_type: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def customer(cls, customer_id: Any, event_type: str, data: dict[str, Any]) -> "PostCommitEffect":
        return cls(EffectKind.notify_customer, str(customer_id), event_type, data)

    @classmethod
    def role(cls, role: str, event_type: str, data: dict[str, Any]) -> "PostCommitEffect":
        return cls(EffectKind.notify_role, role, event_type, data)

    @classmethod
    def commission(cls, booking_id: Any) -> "PostCommitEffect":
        return cls(EffectKind.recalculate_commission, str(booking_id))


def _apply(effect: PostCommitEffect, client: PlatformClient) -> None:
    if effect.kind == EffectKind.notify_customer:
        client.notify_customer(effect.target, effect.event_type or "", effect.data)
    elif effect.kind == EffectKind.notify_role:
        client.notify_role(effect.target, effect.event_type or "", effect.data)
    elif effect.kind == EffectKind.recalculate_commission:
        client.recalculate_commission(effect.target)


def run_post_commit_effects(effects: Iterable[PostCommitEffect], client: PlatformClient) -> int:
    """Fire-and-forget fan-out. Returns how many effects were delivered.

    A failing effect is logged and skipped; the payment outcome it belongs to
    is already committed and must not be unwound.
    """
    delivered = 0
    for effect in effects:
        try:
            _apply(effect, client)
        except requests.RequestException as exc:
            logger.warning(
                "post_commit.effect.failed",
                kind=effect.kind.value,
                target=effect.target,
                event_type=effect.event_type,
                error=str(exc),
            )
            continue
        except Exception:  # noqa: BLE001 - one bad effect must not stop the rest
            logger.exception(
                "post_commit.effect.crashed",
                kind=effect.kind.value,
                target=effect.target,
                event_type=effect.event_type,
            )
            continue
        delivered += 1
    return delivered
