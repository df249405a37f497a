import json
from types import SimpleNamespace

import grpc
import pytest

from subpay.models import Status, Subscription, SubscriptionStatus
from subpay.server import (
    PaymentServicer,
    RpcFailure,
    map_status_to_error,
    register,
)


class FakePayment:
    def __init__(self, create=("sub_1", Status.OK), cancel=Status.OK, subscription=None):
        self.create_result = create
        self.cancel_result = cancel
        self.subscription = subscription if subscription is not None else Subscription()
        self.calls = []

    def create_subscription(self, plan_id, payment_method):
        self.calls.append(("create", plan_id, payment_method))
        return self.create_result

    def cancel_subscription(self, stripe_sub_id):
        self.calls.append(("cancel", stripe_sub_id))
        return self.cancel_result

    def get_subscription(self, stripe_sub_id):
        self.calls.append(("get", stripe_sub_id))
        return self.subscription


class Aborted(Exception):
    def __init__(self, code, details):
        super().__init__(details)
        self.code = code
        self.details = details


class FakeContext:
    def __init__(self):
        self.aborted = None

    def abort(self, code, details):
        self.aborted = (code, details)
        raise Aborted(code, details)


class RecordingServer:
    def __init__(self):
        self.handlers = []

    def add_generic_rpc_handlers(self, handlers):
        self.handlers.extend(handlers)


def lookup(server, name):
    details = SimpleNamespace(method=f"/payment.PaymentService/{name}", invocation_metadata=())
    for generic in server.handlers:
        handler = generic.service(details)
        if handler is not None:
            return handler
    raise AssertionError(f"no handler for {name}")


def invoke(handler, request, context=None):
    decoded = handler.request_deserializer(json.dumps(request).encode())
    response = handler.unary_unary(decoded, context if context is not None else FakeContext())
    return json.loads(handler.response_serializer(response))


@pytest.mark.parametrize(
    "status, code, details",
    [
        (Status.INVALID_USER, grpc.StatusCode.INVALID_ARGUMENT, "Invalid user"),
        (Status.INVALID_PLAN, grpc.StatusCode.INVALID_ARGUMENT, "invalid plan"),
        (Status.INVALID_PAYMENT_METHOD, grpc.StatusCode.INVALID_ARGUMENT, "invalid paying method"),
        (Status.INTERNAL_ERROR, grpc.StatusCode.INTERNAL, "internal error!"),
        (Status.OK, grpc.StatusCode.INTERNAL, "internal error!"),
    ],
)
def test_map_status_to_error(status, code, details):
    failure = map_status_to_error(status)
    assert isinstance(failure, RpcFailure)
    assert (failure.code, failure.details) == (code, details)


def test_create_subscription_returns_id_and_status():
    payment = FakePayment(create=("sub_1", Status.OK))
    servicer = PaymentServicer(payment)
    response = servicer.create_subscription({"plan_id": 2, "payment_method_id": "pm_card"}, None)
    assert response == {"sub_stripe_id": "sub_1", "status": Status.OK.value}
    assert payment.calls == [("create", 2, "pm_card")]


def test_create_subscription_defaults_missing_fields():
    payment = FakePayment()
    PaymentServicer(payment).create_subscription({}, None)
    assert payment.calls == [("create", 0, "")]


def test_create_subscription_failure_raises():
    servicer = PaymentServicer(FakePayment(create=("", Status.INVALID_USER)))
    with pytest.raises(RpcFailure) as info:
        servicer.create_subscription({"plan_id": 1}, None)
    assert info.value.code == grpc.StatusCode.INVALID_ARGUMENT
    assert info.value.details == "Invalid user"


def test_cancel_subscription_ok():
    payment = FakePayment(cancel=Status.OK)
    response = PaymentServicer(payment).cancel_subscription({"sub_stripe_id": "sub_9"}, None)
    assert response == {"status": Status.OK.value}
    assert payment.calls == [("cancel", "sub_9")]


def test_cancel_subscription_failure():
    servicer = PaymentServicer(FakePayment(cancel=Status.INTERNAL_ERROR))
    with pytest.raises(RpcFailure) as info:
        servicer.cancel_subscription({"sub_stripe_id": "sub_9"}, None)
    assert info.value.code == grpc.StatusCode.INTERNAL


def test_get_subscription_converts_fields():
    subscription = Subscription(
        id="42",
        plan_id="2",
        status=SubscriptionStatus.ACTIVE,
        current_period_end=1700000000,
    )
    servicer = PaymentServicer(FakePayment(subscription=subscription))
    response = servicer.get_subscription({"sub_stripe_id": "sub_7"}, None)
    assert response == {
        "subscription": {
            "id": 42,
            "plan_id": 2,
            "stripe_subscription_id": "sub_7",
            "status": SubscriptionStatus.ACTIVE.value,
            "current_period_end": 1700000000,
        }
    }


def test_get_subscription_non_numeric_id_fails():
    servicer = PaymentServicer(FakePayment(subscription=Subscription(id="sub_abc", plan_id="1")))
    with pytest.raises(RpcFailure) as info:
        servicer.get_subscription({"sub_stripe_id": "sub_abc"}, None)
    assert info.value.code == grpc.StatusCode.UNKNOWN


def test_get_subscription_empty_result_fails():
    servicer = PaymentServicer(FakePayment(subscription=Subscription()))
    with pytest.raises(RpcFailure) as info:
        servicer.get_subscription({"sub_stripe_id": "sub_missing"}, None)
    assert info.value.code == grpc.StatusCode.UNKNOWN


def test_get_subscription_bad_plan_becomes_zero():
    subscription = Subscription(id="5", plan_id="price_basic_123")
    response = PaymentServicer(FakePayment(subscription=subscription)).get_subscription(
        {"sub_stripe_id": "sub_5"}, None
    )
    assert response["subscription"]["plan_id"] == 0
    assert response["subscription"]["id"] == 5


def test_get_subscription_plan_out_of_int32_range_becomes_zero():
    subscription = Subscription(id="5", plan_id=str(2**31))
    response = PaymentServicer(FakePayment(subscription=subscription)).get_subscription({}, None)
    assert response["subscription"]["plan_id"] == 0


def test_register_routes_json_messages():
    server = RecordingServer()
    payment = FakePayment(create=("sub_x", Status.OK))
    register(server, PaymentServicer(payment))
    response = invoke(lookup(server, "CreateSubscription"), {"plan_id": 1, "payment_method_id": "pm"})
    assert response == {"sub_stripe_id": "sub_x", "status": Status.OK.value}
    assert payment.calls == [("create", 1, "pm")]


def test_register_aborts_with_mapped_status():
    server = RecordingServer()
    payment = FakePayment(cancel=Status.INVALID_PLAN)
    register(server, PaymentServicer(payment))
    context = FakeContext()
    with pytest.raises(Aborted):
        invoke(lookup(server, "CancelSubscription"), {"sub_stripe_id": "sub_1"}, context)
    assert context.aborted == (grpc.StatusCode.INVALID_ARGUMENT, "invalid plan")
    assert payment.calls == [("cancel", "sub_1")]


def test_register_empty_request_uses_defaults():
    server = RecordingServer()
    payment = FakePayment()
    register(server, PaymentServicer(payment))
    handler = lookup(server, "CancelSubscription")
    response = handler.unary_unary(handler.request_deserializer(b""), FakeContext())
    assert response == {"status": Status.OK.value}
    assert payment.calls == [("cancel", "")]


def test_register_rejects_non_object_request():
    server = RecordingServer()
    register(server, PaymentServicer(FakePayment()))
    handler = lookup(server, "GetSubscription")
    with pytest.raises(ValueError):
        handler.request_deserializer(b"[1, 2]")