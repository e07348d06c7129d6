"""
Expiry scan, alerts, and outbound notifications.
"""
