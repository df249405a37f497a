"""gRPC service layer; messages are JSON objects keyed by protocol field names."""

from __future__ import annotations

import json
import re
from typing import Any

import grpc

from .models import Status

SERVICE_NAME = "payment.PaymentService"

_INT = re.compile(r"[+-]?[0-9]+")
_INVALID_ARGUMENT = {
    Status.INVALID_USER: "Invalid user",
    Status.INVALID_PLAN: "invalid plan",
    Status.INVALID_PAYMENT_METHOD: "invalid paying method",
}


class RpcFailure(Exception):
    """An RPC that ends with a gRPC status code and message."""

    def __init__(self, code: grpc.StatusCode, details: str) -> None:
        super().__init__(details)
        self.code = code
        self.details = details


def _parse_int(text: str, bits: int) -> int:
    limit = 1 << (bits - 1)
    if not _INT.fullmatch(text) or not -limit <= int(text) < limit:
        raise ValueError(f"invalid integer: {text!r}")
    return int(text)


def map_status_to_error(status: Status) -> RpcFailure:
    """Translate a failed operation status into an RPC failure."""
    if status in _INVALID_ARGUMENT:
        return RpcFailure(grpc.StatusCode.INVALID_ARGUMENT, _INVALID_ARGUMENT[status])
    return RpcFailure(grpc.StatusCode.INTERNAL, "internal error!")


class PaymentServicer:
    """Handles the PaymentService RPCs on top of a payment service."""

    def __init__(self, payment: Any) -> None:
        self.payment = payment

    def create_subscription(self, request: dict, context: Any) -> dict:
        sub_id, status = self.payment.create_subscription(
            int(request.get("plan_id", 0)), str(request.get("payment_method_id", ""))
        )
        if status is not Status.OK:
            raise map_status_to_error(status)
        return {"sub_stripe_id": sub_id, "status": status.value}

    def cancel_subscription(self, request: dict, context: Any) -> dict:
        status = self.payment.cancel_subscription(str(request.get("sub_stripe_id", "")))
        if status is not Status.OK:
            raise map_status_to_error(status)
        return {"status": status.value}

    def get_subscription(self, request: dict, context: Any) -> dict:
        stripe_sub_id = str(request.get("sub_stripe_id", ""))
        subscription = self.payment.get_subscription(stripe_sub_id)
        try:
            sub_id = _parse_int(subscription.id, 64)
        except ValueError as exc:
            raise RpcFailure(grpc.StatusCode.UNKNOWN, str(exc)) from None
        try:
            plan_id = _parse_int(subscription.plan_id, 32)
        except ValueError:
            plan_id = 0
        return {
            "subscription": {
                "id": sub_id,
                "plan_id": plan_id,
                "stripe_subscription_id": stripe_sub_id,
                "status": subscription.status.value,
                "current_period_end": subscription.current_period_end,
            }
        }


def _decode(payload: bytes) -> dict:
    message = json.loads(payload) if payload else {}
    if not isinstance(message, dict):
        raise ValueError("request message must be a JSON object")
    return message


def _encode(message: dict) -> bytes:
    return json.dumps(message, separators=(",", ":")).encode("utf-8")


def _aborting(method):
    def behavior(request, context):
        try:
            return method(request, context)
        except RpcFailure as failure:
            context.abort(failure.code, failure.details)
            raise

    return behavior


def register(server: Any, servicer: PaymentServicer) -> None:
    """Add the PaymentService handlers of ``servicer`` to a gRPC server."""
    methods = {
        "CreateSubscription": servicer.create_subscription,
        "CancelSubscription": servicer.cancel_subscription,
        "GetSubscription": servicer.get_subscription,
    }
    handlers = {
        name: grpc.unary_unary_rpc_method_handler(
            _aborting(method), request_deserializer=_decode, response_serializer=_encode
        )
        for name, method in methods.items()
    }
    server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(SERVICE_NAME, handlers),))