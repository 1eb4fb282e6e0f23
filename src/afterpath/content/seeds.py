"""Starter data used when storage is empty or unreadable."""

from __future__ import annotations

from afterpath.content.models import (
    AdminRole,
    AdminUser,
    Branding,
    Category,
    Story,
)

DEFAULT_CATEGORIES: list[tuple[str, str]] = [
    ("career", "Career & Work"),
    ("relationships", "Relationships"),
    ("health", "Health"),
    ("education", "Education"),
    ("loss", "Loss & Grief"),
]

_STARTER_STORIES: list[dict[str, object]] = [
    {
        "id": "1",
        "title": "The Job That Ended on a Tuesday",
        "summary": "Laid off after eleven years, with a mortgage and no plan.",
        "category": "career",
        "image": "",
        "sections": dict(
            slipped="I was let go in a ten-minute call after eleven years at the same desk.",
            harder="I kept getting dressed every morning as if I still had somewhere to be.",
            helped="A friend asked me to help at her bakery two mornings a week.",
            today="I work fewer hours for less money, and I sleep through the night.",
        ),
    },
    {
        "id": "2",
        "title": "Not Finishing the Degree",
        "summary": "Leaving university in the final year felt like the end of everything.",
        "category": "education",
        "image": "",
        "sections": dict(
            slipped="I failed two final-year modules and could not afford to repeat the year.",
            harder="Everyone I graduated school with posted photos in gowns that summer.",
            helped="Taking a short course where nobody knew what I had not finished.",
            today="I teach evening classes in the same subject I dropped.",
        ),
    },
    {
        "id": "3",
        "title": "After the Engagement",
        "summary": "We called off the wedding three months before the date.",
        "category": "relationships",
        "image": "",
        "sections": dict(
            slipped="We cancelled the venue, the flowers and the future in one weekend.",
            harder="Explaining it again and again to people who meant well.",
            helped="Walking the same route every evening until it stopped feeling strange.",
            today="Still single, mostly content, occasionally not. Both are fine.",
        ),
    },
]

INITIAL_ADMIN_USERS: list[tuple[str, AdminRole, str, str]] = [
    ("1", AdminRole.ADMIN, "sudeep@2006", "Primary Admin"),
    ("2", AdminRole.EDITOR, "editor123", "Content Team"),
    ("3", AdminRole.APPROVER, "approver123", "Curator"),
]


def default_categories() -> list[Category]:
    return [Category(id=cid, label=label) for cid, label in DEFAULT_CATEGORIES]


def default_stories() -> list[Story]:
    """Starter stories, all published with empty galleries."""
    return [Story(**data, gallery=[], is_published=True) for data in _STARTER_STORIES]


def default_admin_users() -> list[AdminUser]:
    return [
        AdminUser(id=uid, role=role, password=password, label=label)
        for uid, role, password, label in INITIAL_ADMIN_USERS
    ]


def default_branding() -> Branding:
    return Branding()
