"""Content domain: stories, submissions, categories, accounts, branding.

Models live in :mod:`afterpath.content.models`; the state machine that
mutates them is :mod:`afterpath.content.lifecycle`.
"""

from afterpath.content.models import (
    AdminRole,
    AdminUser,
    Branding,
    Category,
    GalleryItem,
    Story,
    StorySections,
    Submission,
)

__all__ = [
    "AdminRole",
    "AdminUser",
    "Branding",
    "Category",
    "GalleryItem",
    "Story",
    "StorySections",
    "Submission",
]
