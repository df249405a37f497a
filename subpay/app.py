"""gRPC server application with bearer-token authentication."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Protocol

import grpc
import jwt

from .jsonlog import Logger
from .models import Status, Subscription, bind_user_id
from .server import PaymentServicer, RpcFailure, _parse_int, register

AUTH_SECRET = b"secret"

_BEARER = "Bearer "


class _Payment(Protocol):
    """The subscription operations the gRPC service delegates to."""

    def create_subscription(self, plan_id: int, payment_method: str) -> tuple[str, Status]: ...

    def cancel_subscription(self, stripe_sub_id: str) -> Status: ...

    def get_subscription(self, stripe_sub_id: str) -> Subscription: ...


def authenticate(metadata: Iterable[tuple[str, Any]] | None, secret: bytes) -> int:
    """Return the user id carried by the bearer token in request metadata."""
    if metadata is None:
        raise RpcFailure(grpc.StatusCode.UNAUTHENTICATED, "missing metadata")

    values = [value for key, value in metadata if key.lower() == "authorization"]
    if not values or not isinstance(values[0], str) or not values[0].startswith(_BEARER):
        raise RpcFailure(grpc.StatusCode.UNAUTHENTICATED, "missing or invalid authorization header")

    try:
        claims = jwt.decode(
            values[0][len(_BEARER):],
            secret,
            algorithms=["HS256", "HS384", "HS512"],
            options={"verify_aud": False, "verify_iat": False, "verify_sub": False, "verify_jti": False},
        )
    except jwt.PyJWTError:
        raise RpcFailure(grpc.StatusCode.UNAUTHENTICATED, "invalid token") from None

    if not isinstance(claims, dict):
        raise RpcFailure(grpc.StatusCode.INTERNAL, "cannot parse claims")
    subject = claims.get("sub")
    if not isinstance(subject, str):
        raise RpcFailure(grpc.StatusCode.INTERNAL, "user ID not found in token")
    try:
        return _parse_int(subject, 64)
    except ValueError:
        raise RpcFailure(grpc.StatusCode.INTERNAL, "invalid user ID format") from None


class JWTAuthInterceptor(grpc.ServerInterceptor):
    """Requires a valid HMAC-signed bearer token on every unary call."""

    def __init__(self, secret: bytes) -> None:
        self._secret = secret

    def intercept_service(self, continuation, handler_call_details):
        handler = continuation(handler_call_details)
        if handler is None or handler.unary_unary is None:
            return handler

        behavior = handler.unary_unary
        try:
            user_id = authenticate(handler_call_details.invocation_metadata, self._secret)
        except RpcFailure as failure:

            def wrapped(request, context):
                context.abort(failure.code, failure.details)

        else:

            def wrapped(request, context):
                with bind_user_id(user_id):
                    return behavior(request, context)

        return grpc.unary_unary_rpc_method_handler(
            wrapped,
            request_deserializer=handler.request_deserializer,
            response_serializer=handler.response_serializer,
        )


class GrpcApp:
    """Owns the gRPC server that exposes the payment service."""

    def __init__(self, log: Logger, port: int, payment: _Payment) -> None:
        self.log = log
        self.port = port
        self.server = grpc.server(
            ThreadPoolExecutor(max_workers=10), interceptors=[JWTAuthInterceptor(AUTH_SECRET)]
        )
        register(self.server, PaymentServicer(payment))

    def run(self) -> None:
        """Listen on the configured port and serve until stopped."""
        try:
            bound = self.server.add_insecure_port(f"[::]:{self.port}")
        except RuntimeError as exc:
            raise RuntimeError(f"grpcapp.run: {exc}") from exc
        if bound == 0:
            raise RuntimeError(f"grpcapp.run: unable to listen on port {self.port}")
        self.port = bound
        self.log.print_info("Running GRPC server")
        self.server.start()
        self.server.wait_for_termination()

    def stop(self) -> None:
        """Stop accepting calls and wait for calls in flight to finish."""
        self.server.stop(30.0).wait()