"""Outbound clients for the downstream domain applications."""
