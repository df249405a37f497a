"""Subscription data types and the per-request user identity."""

from __future__ import annotations

import contextvars
import enum
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator


class Status(enum.Enum):
    OK = "STATUS_OK"
    INVALID_USER = "STATUS_INVALID_USER"
    INVALID_PLAN = "STATUS_INVALID_PLAN"
    INVALID_PAYMENT_METHOD = "STATUS_INVALID_PAYMENT_METHOD"
    INTERNAL_ERROR = "STATUS_INTERNAL_ERROR"


class SubscriptionStatus(enum.Enum):
    UNSPECIFIED = "SUBSCRIPTION_STATUS_UNSPECIFIED"
    ACTIVE = "SUBSCRIPTION_STATUS_ACTIVE"
    CANCELED = "SUBSCRIPTION_STATUS_CANCELED"
    INCOMPLETE_EXPIRED = "SUBSCRIPTION_STATUS_INCOMPLETE_EXPIRED"
    UNPAID = "SUBSCRIPTION_STATUS_UNPAID"
    TRIALING = "SUBSCRIPTION_STATUS_TRIALING"


@dataclass(frozen=True)
class Subscription:
    id: str = ""
    plan_id: str = ""
    stripe_sub_id: str = ""
    status: SubscriptionStatus = SubscriptionStatus.UNSPECIFIED
    current_period_end: int = 0


_user_id: contextvars.ContextVar[int] = contextvars.ContextVar("user_id")


def current_user_id() -> int:
    """Return the user id bound to the current context."""
    try:
        return _user_id.get()
    except LookupError:
        raise LookupError("user id is missing or invalid in context") from None


@contextmanager
def bind_user_id(user_id: int) -> Iterator[int]:
    """Bind a user id for the duration of the block."""
    token = _user_id.set(user_id)
    try:
        yield user_id
    finally:
        _user_id.reset(token)