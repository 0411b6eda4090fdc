"""
Remote authority clients
"""

from .authority_client import HttpPreferenceAuthority, RemoteAuthority

__all__ = [
    "HttpPreferenceAuthority",
    "RemoteAuthority",
]
