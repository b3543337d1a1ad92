"""Outbound HTTP to the external API."""

from adops.client.backoff import ExponentialBackoff
from adops.client.resilient import ResilientClient

__all__ = ["ExponentialBackoff", "ResilientClient"]
