"""
Wire-level transport.

This module contains the lowest-level communication components:
- HueClient - HTTP request/response exchange with one hub
- Request, Response - Raw request and decoded response data
- nupnp_search - Hub discovery through the vendor portal
"""

from .client import HueClient, Request, Response, ClientConst, nupnp_search

__all__ = [
    "HueClient",
    "Request",
    "Response",
    "ClientConst",
    "nupnp_search",
]
