"""Relay: a single-target HTTP forwarding proxy with a token-protected admin API."""
