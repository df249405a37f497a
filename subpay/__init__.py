"""Subscription payment service over gRPC backed by Stripe."""

__version__ = "1.0.0"