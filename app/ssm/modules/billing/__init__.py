"""
Stripe subscription mirror and webhook processing.
"""
