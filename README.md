# subpay

A small gRPC service that creates, cancels and looks up subscriptions
through the Stripe API. Every call must carry a JWT bearer token; the
numeric user ID in the token's `sub` claim becomes the Stripe customer
for new subscriptions.

## Installation

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Running the server

```
subpay --grpc-port 6000 --token-ttl 1h
```

The server listens on the given port and writes one JSON object per line
to standard output for each log entry. It shuts down gracefully on
`SIGINT` or `SIGTERM`. Durations such as `--token-ttl` take values like
`90s`, `15m` or `1h` (see `subpay.cli.parse_duration`).

## Authentication

Each request must send an `authorization` metadata entry of the form
`Bearer token`, where the token is an HMAC-signed JWT whose `sub` claim
is the user ID as a decimal string. Requests without it, or with a token
that does not verify, are rejected with `UNAUTHENTICATED`; a token whose
`sub` is missing or not a number is rejected with `INTERNAL`.

## Operations

| RPC                  | What it does                                                   |
|----------------------|----------------------------------------------------------------|
| `CreateSubscription` | Subscribes the calling user to plan 1 (basic) or 2 (pro).      |
| `CancelSubscription` | Cancels a Stripe subscription by its ID.                       |
| `GetSubscription`    | Returns ID, plan, status and period end of a subscription.     |

Failures map to gRPC codes: an unknown user, plan or payment method gives
`INVALID_ARGUMENT`; anything else gives `INTERNAL`.

## Using the pieces directly

```python
import sys
from datetime import timedelta

from subpay.jsonlog import Level, Logger
from subpay.models import bind_user_id
from subpay.services import PaymentService, StripeClient

log = Logger(sys.stdout, Level.INFO)
stripe = StripeClient("placeholder")
payments = PaymentService(log, timedelta(hours=1), stripe)

with bind_user_id(42):
    sub_id, status = payments.create_subscription(1, "pm_card_visa")
```

`subpay.validator.Validator` collects field errors (`check`, `add_error`,
`valid`), and `subpay.jsonlog.Logger` offers `print_info`, `print_error`
and `print_fatal`, the last of which ends the process.