"""External service integrations."""

from .stripe_client import FakeStripeClient, StripeClient

__all__ = ["FakeStripeClient", "StripeClient"]
