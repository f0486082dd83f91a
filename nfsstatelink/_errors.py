"""Exception hierarchy for nfsstatelink.

The callout dispatcher maps these onto exit statuses: :class:`NotReady`
exits zero so that the cluster manager simply retries later, everything
else exits non-zero.
"""

from __future__ import annotations


class StateLinkError(Exception):
    """Base class for all errors raised by this package."""


class NotReady(StateLinkError):
    """The shared filesystem is not mounted yet."""


class ConfigurationError(StateLinkError, ValueError):
    """Unsupported filesystem variant, missing variable or bad address."""


class FilesystemError(StateLinkError):
    """A create, link, rename or remove failed on the state tree."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class ServiceError(StateLinkError):
    """A service lifecycle or IP handler command failed."""
