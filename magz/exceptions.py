"""Exception hierarchy for Magz.

All Magz errors inherit from MagzError so callers can catch broad or narrow.
"""


class MagzError(Exception):
    """Base exception for all Magz errors."""


class ConfigError(MagzError):
    """Invalid or incomplete configuration."""


class ContainerError(MagzError):
    """Base class for failures while reading a container."""


class ContainerUnreadable(ContainerError):
    """Archive or directory cannot be opened or parsed."""


class PageNotFound(ContainerError):
    """Requested page identifier is not in the container listing."""


class DecodeFailed(ContainerError):
    """Page bytes cannot be interpreted as an image."""


class ThumbnailError(MagzError):
    """Base class for thumbnail pipeline failures."""


class InvalidDimensions(ThumbnailError):
    """Source image has a zero width or height."""


class EncodeFailed(ThumbnailError):
    """Thumbnail encoder error."""


class StoreUnavailable(MagzError):
    """Cache store cannot be read or written."""


class EntryNotFound(MagzError):
    """No catalog entry matches the requested path or id."""


class Unauthorized(MagzError):
    """Requested path lies outside the configured library roots."""
