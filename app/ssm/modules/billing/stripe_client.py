from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import stripe


class WebhookSignatureError(ValueError):
    pass


@dataclass(frozen=True)
class StripeWebhookVerifier:
    webhook_secret: str
    tolerance_seconds: int = 300

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify the Stripe-Signature header against the raw body and return the event as a plain dict.

        Raises WebhookSignatureError when the secret is unset, the signature is wrong, or the body is not JSON.
        """
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret not configured")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret, tolerance=self.tolerance_seconds)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Invalid webhook signature: {e}") from e
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid webhook payload: {e}") from e
        event = json.loads(payload.decode("utf-8") if isinstance(payload, bytes) else payload)
        if not isinstance(event, dict):
            raise WebhookSignatureError("Webhook payload is not a JSON object")
        return event


def verifier_from_config(config: dict) -> StripeWebhookVerifier:
    return StripeWebhookVerifier(webhook_secret=(config.get("STRIPE_WEBHOOK_SECRET") or "").strip())
