"""Exceptions raised by afterpath.

Commands on the content controller never raise for rejected or denied
requests; they return an :class:`~afterpath.content.lifecycle.Outcome`.
These exceptions cover the few places that read from the outside world.
"""


class AfterpathError(Exception):
    """Base error for afterpath."""


class MediaReadError(AfterpathError):
    """A media file could not be read into an encoded data URL."""
