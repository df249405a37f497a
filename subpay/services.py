"""Subscription operations backed by the Stripe REST API."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Iterable
from urllib.parse import quote

import requests

from .jsonlog import Logger
from .models import Status, Subscription, SubscriptionStatus, current_user_id

DEFAULT_API_BASE = "https://api.stripe.com"
_TIMEOUT_SECONDS = 80

_PLAN_PRICES = {1: "price_basic_123", 2: "price_pro_456"}

_STRIPE_STATUSES = {
    "active": SubscriptionStatus.ACTIVE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.INCOMPLETE_EXPIRED,
    "unpaid": SubscriptionStatus.UNPAID,
    "trialing": SubscriptionStatus.TRIALING,
}


class StripeError(Exception):
    """A Stripe request failed or returned an error."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StripeClient:
    """Minimal client for the Stripe subscriptions endpoints."""

    def __init__(
        self,
        secret_key: str,
        session: requests.Session | None = None,
        base_url: str = DEFAULT_API_BASE,
    ) -> None:
        self._secret_key = secret_key
        self._session = session if session is not None else requests.Session()
        self._base_url = base_url.rstrip("/")

    def create_subscription(
        self, customer: str, price: str, expand: Iterable[str] = ()
    ) -> dict[str, Any]:
        form = [("customer", customer), ("items[0][price]", price)]
        form += [(f"expand[{i}]", field) for i, field in enumerate(expand)]
        return self._request("POST", "/v1/subscriptions", form)

    def cancel_subscription(self, subscription_id: str) -> dict[str, Any]:
        return self._request("DELETE", f"/v1/subscriptions/{quote(subscription_id, safe='')}")

    def get_subscription(self, subscription_id: str) -> dict[str, Any]:
        return self._request("GET", f"/v1/subscriptions/{quote(subscription_id, safe='')}")

    def _request(self, method: str, path: str, form: list[tuple[str, str]] | None = None) -> dict[str, Any]:
        try:
            response = self._session.request(
                method,
                self._base_url + path,
                data=form,
                headers={"Authorization": f"Bearer {self._secret_key}"},
                timeout=_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise StripeError(f"request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            raise StripeError(
                f"invalid response: HTTP {response.status_code}", response.status_code
            ) from None

        if not response.ok:
            error = payload.get("error") if isinstance(payload, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            raise StripeError(message or f"HTTP {response.status_code}", response.status_code)
        if not isinstance(payload, dict):
            raise StripeError("unexpected response body", response.status_code)
        return payload


def map_plan_id_to_stripe_price(plan_id: int) -> str:
    """Return the Stripe price for a plan id, or an empty string if unknown."""
    return _PLAN_PRICES.get(plan_id, "")


def stripe_status_to_subscription_status(status: str) -> SubscriptionStatus:
    return _STRIPE_STATUSES.get(status, SubscriptionStatus.UNSPECIFIED)


class PaymentService:
    """Creates, cancels and looks up subscriptions for the current user."""

    def __init__(self, log: Logger, token_ttl: timedelta, stripe: StripeClient) -> None:
        self.log = log
        self.token_ttl = token_ttl
        self.stripe = stripe

    def create_subscription(self, plan_id: int, payment_method: str) -> tuple[str, Status]:
        try:
            user_id = current_user_id()
        except LookupError:
            return "", Status.INVALID_USER

        try:
            subscription = self.stripe.create_subscription(
                customer=str(user_id),
                price=map_plan_id_to_stripe_price(plan_id),
                expand=["latest_invoice.payment_intent"],
            )
        except StripeError:
            return "", Status.INTERNAL_ERROR
        return subscription.get("id", ""), Status.OK

    def cancel_subscription(self, stripe_sub_id: str) -> Status:
        try:
            subscription = self.stripe.cancel_subscription(stripe_sub_id)
        except StripeError:
            return Status.INTERNAL_ERROR
        if subscription.get("status") == "canceled":
            return Status.OK
        return Status.INTERNAL_ERROR

    def get_subscription(self, stripe_sub_id: str) -> Subscription:
        try:
            subscription = self.stripe.get_subscription(stripe_sub_id)
        except StripeError:
            return Subscription()

        return Subscription(
            id=subscription["id"],
            plan_id=subscription["items"]["data"][0]["price"]["id"],
            status=stripe_status_to_subscription_status(subscription.get("status", "")),
            current_period_end=subscription.get("ended_at") or 0,
        )