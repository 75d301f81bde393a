"""Relay: a configurable HTTP request layer."""
