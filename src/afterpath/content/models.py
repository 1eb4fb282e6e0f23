"""Content domain models: pure Pydantic v2 data types.

Stories move between draft and live; submissions are anonymous story
candidates waiting for review.  Persisted JSON keeps the camelCase field
names the stored data has always used (``isPublished``, ``siteName`` ...),
while Python code works with snake_case attributes.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class AdminRole(StrEnum):
    """Editorial role attached to an account."""

    ADMIN = "ADMIN"
    EDITOR = "EDITOR"
    APPROVER = "APPROVER"


class Category(BaseModel):
    """A slug-identified story category."""

    id: str
    label: str


class GalleryItem(BaseModel):
    """A captioned photo owned by a single story."""

    id: str
    url: str
    caption: str = ""


class StorySections(BaseModel):
    """The four fixed narrative parts of a story."""

    slipped: str = ""
    harder: str = ""
    helped: str = ""
    today: str = ""

    def missing(self) -> list[str]:
        """Names of sections that are empty or whitespace."""
        return [name for name, text in self.model_dump().items() if not text.strip()]


class Story(BaseModel):
    """A draft or live narrative unit."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str = ""
    summary: str = ""
    category: str
    image: str = ""
    sections: StorySections = Field(default_factory=StorySections)
    gallery: list[GalleryItem] = Field(default_factory=list)
    is_published: bool = Field(default=False, alias="isPublished")

    @property
    def is_draft(self) -> bool:
        return not self.is_published


class Submission(BaseModel):
    """An anonymous, unreviewed story candidate."""

    id: str
    slipped: str
    helped: str
    image: str | None = None
    timestamp: int


class AdminUser(BaseModel):
    """An editorial account. Credentials are stored as given."""

    id: str
    role: AdminRole
    password: str
    label: str


class Branding(BaseModel):
    """Site-wide branding singleton."""

    model_config = ConfigDict(populate_by_name=True)

    site_name: str = Field(default="AFTER®", alias="siteName")
    logo_url: str | None = Field(default=None, alias="logoUrl")
    promo_video_url: str | None = Field(default=None, alias="promoVideoUrl")
