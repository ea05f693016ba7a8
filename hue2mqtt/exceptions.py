"""
hue2mqtt library exceptions.

This module defines all custom exceptions used throughout the library.
"""

from typing import Optional


class HueError(Exception):
    """Base exception for hub errors"""
    pass


class HueConnectionError(HueError):
    """Raised when the hub cannot be reached or returns an unusable response"""
    pass


class HueApiError(HueError):
    """Raised when the hub answers with an error object"""

    def __init__(self, description: str, type: Optional[int] = None, address: Optional[str] = None):
        super().__init__(description)
        self.description = description
        self.type = type
        self.address = address


class HueLinkButtonError(HueApiError):
    """Raised when registration needs the link button on the hub to be pressed"""
    pass


class HueDiscoveryError(HueError):
    """Raised when no hub could be discovered"""
    pass


class HueConfigurationError(HueError):
    """Raised when configuration is invalid"""
    pass
