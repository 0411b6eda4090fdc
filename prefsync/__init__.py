"""
prefsync
Optimistic, multi-consumer user preference synchronization
"""

__version__ = "1.0.0"
