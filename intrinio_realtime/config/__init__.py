"""
Configuration for the realtime client
"""

from .settings import RealtimeSettings, FanOutPolicy, get_settings

__all__ = ["RealtimeSettings", "FanOutPolicy", "get_settings"]
