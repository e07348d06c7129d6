"""
Module catalog, per-organization module state, and the access gate.
"""
