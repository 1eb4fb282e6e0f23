"""Content lifecycle: submissions, stories, categories, accounts, branding.

A single :class:`ContentController` owns the application state and is the
only writer to the key/value store.  Every command returns an
:class:`Outcome`; rejected and unauthorized commands leave both the
in-memory state and storage untouched.

Story states are Draft (``is_published=False``) and Live.  Submissions
are Pending until promoted into a new Draft story or discarded; neither
transition can be undone.  Collections are rewritten in full after each
change.  Commands that touch two collections (promotion, category
deletion) write them one after the other; there is no cross-key
transaction.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from afterpath.config import AfterpathConfig
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
from afterpath.content.seeds import (
    default_admin_users,
    default_branding,
    default_categories,
    default_stories,
)
from afterpath.errors import MediaReadError
from afterpath.permissions import Capability, can, capabilities_for, requires
from afterpath.shared.images import (
    COVER_ASPECT,
    GALLERY_ASPECT,
    ImageEditSession,
    ImageTarget,
    ImageTargetKind,
    read_media_file_async,
)
from afterpath.store import KeyValueStore

logger = logging.getLogger(__name__)

STORIES_KEY = "stories"
CATEGORIES_KEY = "categories"
SUBMISSIONS_KEY = "submissions"
ADMIN_USERS_KEY = "admin_users"
BRANDING_KEY = "branding"
VISITED_KEY = "visited"

FALLBACK_CATEGORY_ID = "uncategorized"
PROMOTED_TITLE = "Shared Path"
PROMOTED_HARDER = "Shared by a visitor."
PROMOTED_TODAY = "Still unfolding."
SUMMARY_LENGTH = 100

Confirm = Callable[[str], bool]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class OutcomeStatus(StrEnum):
    OK = "ok"
    REJECTED = "rejected"
    DENIED = "denied"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Outcome:
    """Result of a controller command."""

    status: OutcomeStatus
    message: str = ""
    value: Any = None

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK

    @classmethod
    def success(cls, value: Any = None, message: str = "") -> Outcome:
        return cls(OutcomeStatus.OK, message, value)

    @classmethod
    def rejected(cls, message: str) -> Outcome:
        return cls(OutcomeStatus.REJECTED, message)

    @classmethod
    def denied(cls, message: str) -> Outcome:
        return cls(OutcomeStatus.DENIED, message)

    @classmethod
    def cancelled(cls, message: str = "") -> Outcome:
        return cls(OutcomeStatus.CANCELLED, message)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


@dataclass
class AppState:
    """Everything the controller knows: persisted collections plus session slots."""

    stories: list[Story] = field(default_factory=list)
    categories: list[Category] = field(default_factory=list)
    submissions: list[Submission] = field(default_factory=list)
    admin_users: list[AdminUser] = field(default_factory=list)
    branding: Branding = field(default_factory=Branding)
    returning_visitor: bool = False
    role: AdminRole | None = None
    editing: Story | None = None
    image_session: ImageEditSession | None = None
    submitting: bool = False


def load_state(store: KeyValueStore) -> AppState:
    """Read every collection, substituting defaults for missing or corrupt keys.

    Also records the visit: the first load marks the visitor flag, later
    loads report a returning visitor.
    """
    returning = store.load_flag(VISITED_KEY)
    if not returning:
        store.save_flag(VISITED_KEY)

    categories = store.load(CATEGORIES_KEY, list[Category], default_categories)
    if not categories:
        logger.warning("Stored category list is empty, restoring defaults")
        categories = default_categories()
    admin_users = store.load(ADMIN_USERS_KEY, list[AdminUser], default_admin_users)
    if not admin_users:
        logger.warning("Stored account list is empty, restoring defaults")
        admin_users = default_admin_users()

    return AppState(
        stories=store.load(STORIES_KEY, list[Story], default_stories),
        categories=categories,
        submissions=store.load(SUBMISSIONS_KEY, list[Submission], list),
        admin_users=admin_users,
        branding=store.load(BRANDING_KEY, Branding, default_branding),
        returning_visitor=returning,
    )


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def slugify(label: str) -> str:
    """Category id for a label: lowercase, whitespace runs become ``-``."""
    return re.sub(r"\s+", "-", label.strip().lower())


def unique_time_id(now_ms: int, taken: Iterable[str]) -> str:
    """Millisecond timestamp id, bumped forward until it is unused."""
    used = set(taken)
    candidate = now_ms
    while str(candidate) in used:
        candidate += 1
    return str(candidate)


def promoted_story(submission: Submission, categories: list[Category]) -> Story:
    """Build the Draft story a submission becomes when promoted."""
    return Story(
        id=f"story-{submission.id}",
        title=PROMOTED_TITLE,
        summary=submission.slipped[:SUMMARY_LENGTH] + "...",
        category=categories[0].id if categories else FALLBACK_CATEGORY_ID,
        image=submission.image or "",
        sections=StorySections(
            slipped=submission.slipped,
            harder=PROMOTED_HARDER,
            helped=submission.helped,
            today=PROMOTED_TODAY,
        ),
        gallery=[],
        is_published=False,
    )


def _index_of(items: list[Any], item_id: str) -> int | None:
    for i, item in enumerate(items):
        if item.id == item_id:
            return i
    return None


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class ContentController:
    """Owns :class:`AppState` and applies commands to it.

    Each mutating command is gated by :func:`~afterpath.permissions.requires`
    and writes the collections it changed back to the store before
    returning.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: AfterpathConfig | None = None,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store
        self.config = config or AfterpathConfig()
        self._clock = clock
        self.state = load_state(store)

    @classmethod
    def from_config(cls, config: AfterpathConfig) -> ContentController:
        store = KeyValueStore(config.data_dir, prefix=config.storage.key_prefix)
        return cls(store, config)

    # ── Session ──────────────────────────────────────────────────

    @property
    def role(self) -> AdminRole | None:
        return self.state.role

    @property
    def capabilities(self) -> frozenset[Capability]:
        return capabilities_for(self.state.role)

    @property
    def returning_visitor(self) -> bool:
        return self.state.returning_visitor

    def _denied(self, capability: Capability) -> Outcome:
        return Outcome.denied(f"Your role does not allow {capability.value.replace('_', ' ')}.")

    def authenticate(self, password: str) -> Outcome:
        """Log in with an account password; the outcome value is the role."""
        user = next((u for u in self.state.admin_users if password and u.password == password), None)
        if user is None:
            return Outcome.rejected("Invalid credentials.")
        if user.role is not self.state.role:
            self.state.editing = None
            self.state.image_session = None
        self.state.role = user.role
        logger.info("Signed in as %s (%s)", user.label, user.role)
        return Outcome.success(user.role)

    def logout(self) -> Outcome:
        self.state.role = None
        self.state.editing = None
        self.state.image_session = None
        return Outcome.success()

    # ── Persistence ──────────────────────────────────────────────

    def _save_stories(self) -> None:
        self.store.save(STORIES_KEY, self.state.stories, list[Story])

    def _save_categories(self) -> None:
        self.store.save(CATEGORIES_KEY, self.state.categories, list[Category])

    def _save_submissions(self) -> None:
        self.store.save(SUBMISSIONS_KEY, self.state.submissions, list[Submission])

    def _save_admin_users(self) -> None:
        self.store.save(ADMIN_USERS_KEY, self.state.admin_users, list[AdminUser])

    def _save_branding(self) -> None:
        self.store.save(BRANDING_KEY, self.state.branding, Branding)

    # ── Queries ──────────────────────────────────────────────────

    def get_story(self, story_id: str) -> Story | None:
        idx = _index_of(self.state.stories, story_id)
        return None if idx is None else self.state.stories[idx]

    def published_stories(self, category: str | None = None) -> list[Story]:
        """Live stories in listing order, optionally limited to one category."""
        return [
            s
            for s in self.state.stories
            if s.is_published and (category is None or s.category == category)
        ]

    def pending_submissions(self) -> list[Submission]:
        """Submissions awaiting review, most recent first."""
        return sorted(self.state.submissions, key=lambda s: s.timestamp, reverse=True)

    def category_ids(self) -> list[str]:
        return [c.id for c in self.state.categories]

    # ── Submissions ──────────────────────────────────────────────

    async def submit_story(
        self,
        slipped: str,
        helped: str,
        image: str | Path | None = None,
    ) -> Outcome:
        """Queue a visitor's story for review.

        Only one submission may be in flight; calls made while one is
        still being sent are rejected.  *image* may be an encoded data URL
        or a path to an image file.
        """
        if self.state.submitting:
            return Outcome.rejected("Your story is already being sent.")
        if not slipped.strip() or not helped.strip():
            return Outcome.rejected("Please tell us both what slipped and what helped.")

        self.state.submitting = True
        try:
            encoded: str | None
            if isinstance(image, Path):
                try:
                    encoded = await read_media_file_async(image, kind="image")
                except MediaReadError as exc:
                    return Outcome.rejected(str(exc))
            else:
                encoded = image or None

            await asyncio.sleep(self.config.submissions.submit_delay)

            now = self._clock()
            submission = Submission(
                id=unique_time_id(now, (s.id for s in self.state.submissions)),
                slipped=slipped,
                helped=helped,
                image=encoded,
                timestamp=now,
            )
            self.state.submissions.insert(0, submission)
            self._save_submissions()
            logger.info("Queued submission %s", submission.id)
            return Outcome.success(submission)
        finally:
            self.state.submitting = False

    @requires(Capability.REVIEW_SUBMISSIONS)
    def promote_submission(self, submission_id: str) -> Outcome:
        """Turn a pending submission into a Draft story and open it for editing."""
        idx = _index_of(self.state.submissions, submission_id)
        if idx is None:
            return Outcome.rejected("Submission not found.")
        submission = self.state.submissions[idx]
        story = promoted_story(submission, self.state.categories)
        if self.get_story(story.id) is not None:
            return Outcome.rejected(f"Story {story.id} already exists.")

        self.state.stories.append(story)
        self._save_stories()
        del self.state.submissions[idx]
        self._save_submissions()

        self.state.editing = story.model_copy(deep=True)
        logger.info("Promoted submission %s to draft %s", submission_id, story.id)
        return Outcome.success(story)

    @requires(Capability.REVIEW_SUBMISSIONS)
    def discard_submission(self, submission_id: str, confirm: Confirm) -> Outcome:
        idx = _index_of(self.state.submissions, submission_id)
        if idx is None:
            return Outcome.rejected("Submission not found.")
        if not confirm("Discard this submission?"):
            return Outcome.cancelled()
        del self.state.submissions[idx]
        self._save_submissions()
        logger.info("Discarded submission %s", submission_id)
        return Outcome.success()

    # ── Editor ───────────────────────────────────────────────────

    @requires(Capability.EDIT_STORY)
    def create_story(self) -> Outcome:
        """Open a blank Draft story in the editor."""
        story = Story(
            id=unique_time_id(self._clock(), (s.id for s in self.state.stories)),
            category=self.state.categories[0].id if self.state.categories else "",
            is_published=False,
        )
        self.state.editing = story
        return Outcome.success(story)

    @requires(Capability.EDIT_STORY)
    def edit_story(self, story_id: str) -> Outcome:
        """Open a copy of an existing story in the editor."""
        story = self.get_story(story_id)
        if story is None:
            return Outcome.rejected("Story not found.")
        self.state.editing = story.model_copy(deep=True)
        return Outcome.success(self.state.editing)

    def close_editor(self) -> Outcome:
        """Drop the open draft without saving it."""
        self.state.editing = None
        return Outcome.success()

    def _validate_story(self, story: Story) -> str | None:
        if not story.title.strip():
            return "A title is required."
        if not story.summary.strip():
            return "A summary is required."
        missing = story.sections.missing()
        if missing:
            return f"Missing story sections: {', '.join(missing)}."
        if story.category not in self.category_ids():
            return f"Unknown category: {story.category or '(none)'}."
        gallery_ids = [item.id for item in story.gallery]
        if len(gallery_ids) != len(set(gallery_ids)):
            return "Gallery photos must have unique ids."
        return None

    @requires(Capability.EDIT_STORY)
    def save_story(self, story: Story | None = None) -> Outcome:
        """Create or update a story by id, then close the editor.

        Saves the open draft when *story* is omitted.  The published flag
        is only taken from the draft when the role may publish; otherwise
        the stored story's flag (Draft for new stories) is kept.
        """
        story = story if story is not None else self.state.editing
        if story is None:
            return Outcome.rejected("No story is open in the editor.")
        error = self._validate_story(story)
        if error:
            return Outcome.rejected(error)

        saved = story.model_copy(deep=True)
        idx = _index_of(self.state.stories, saved.id)
        if not can(self.role, Capability.PUBLISH_STORY):
            saved.is_published = False if idx is None else self.state.stories[idx].is_published
        if idx is None:
            self.state.stories.append(saved)
        else:
            self.state.stories[idx] = saved
        self._save_stories()
        self.state.editing = None
        logger.info("Saved story %s", saved.id)
        return Outcome.success(saved)

    def _open_gallery_item(self, item_id: str) -> GalleryItem | None:
        if self.state.editing is None:
            return None
        idx = _index_of(self.state.editing.gallery, item_id)
        return None if idx is None else self.state.editing.gallery[idx]

    @requires(Capability.EDIT_STORY)
    def update_gallery_caption(self, item_id: str, caption: str) -> Outcome:
        item = self._open_gallery_item(item_id)
        if item is None:
            return Outcome.rejected("Gallery photo not found.")
        item.caption = caption
        return Outcome.success(item)

    @requires(Capability.EDIT_STORY)
    def remove_gallery_item(self, item_id: str) -> Outcome:
        item = self._open_gallery_item(item_id)
        if item is None:
            return Outcome.rejected("Gallery photo not found.")
        self.state.editing.gallery.remove(item)  # type: ignore[union-attr]
        return Outcome.success()

    # ── Publication ──────────────────────────────────────────────

    def _set_published(self, story_id: str, published: bool) -> Outcome:
        story = self.get_story(story_id)
        if story is None:
            return Outcome.rejected("Story not found.")
        if story.is_published != published:
            story.is_published = published
            self._save_stories()
            logger.info("Story %s is now %s", story_id, "live" if published else "a draft")
        if self.state.editing is not None and self.state.editing.id == story_id:
            self.state.editing.is_published = published
        return Outcome.success(story)

    @requires(Capability.PUBLISH_STORY)
    def publish_story(self, story_id: str) -> Outcome:
        return self._set_published(story_id, True)

    @requires(Capability.PUBLISH_STORY)
    def unpublish_story(self, story_id: str) -> Outcome:
        return self._set_published(story_id, False)

    @requires(Capability.DELETE_STORY)
    def delete_story(self, story_id: str, confirm: Confirm) -> Outcome:
        """Permanently remove a story once *confirm* agrees."""
        idx = _index_of(self.state.stories, story_id)
        if idx is None:
            return Outcome.rejected("Story not found.")
        if not confirm("Delete this story?"):
            return Outcome.cancelled()
        del self.state.stories[idx]
        self._save_stories()
        if self.state.editing is not None and self.state.editing.id == story_id:
            self.state.editing = None
        logger.info("Deleted story %s", story_id)
        return Outcome.success()

    # ── Categories ───────────────────────────────────────────────

    @requires(Capability.MANAGE_CATEGORIES)
    def add_category(self, label: str) -> Outcome:
        if not label.strip():
            return Outcome.rejected("A category name is required.")
        category = Category(id=slugify(label), label=label.strip())
        if category.id in self.category_ids():
            return Outcome.rejected(f"Category {category.id} already exists.")
        self.state.categories.append(category)
        self._save_categories()
        return Outcome.success(category)

    @requires(Capability.MANAGE_CATEGORIES)
    def edit_category(self, category_id: str, label: str) -> Outcome:
        """Rename a category; its id and the stories pointing at it are unchanged."""
        if not label.strip():
            return Outcome.rejected("A category name is required.")
        idx = _index_of(self.state.categories, category_id)
        if idx is None:
            return Outcome.rejected("Category not found.")
        self.state.categories[idx].label = label.strip()
        self._save_categories()
        return Outcome.success(self.state.categories[idx])

    @requires(Capability.MANAGE_CATEGORIES)
    def delete_category(self, category_id: str, confirm: Confirm) -> Outcome:
        """Remove a category and move its stories to the first remaining one."""
        idx = _index_of(self.state.categories, category_id)
        if idx is None:
            return Outcome.rejected("Category not found.")
        if len(self.state.categories) <= 1:
            return Outcome.rejected("At least one category must exist.")
        if not confirm("Delete category? Stories will be reassigned."):
            return Outcome.cancelled()

        del self.state.categories[idx]
        replacement = self.state.categories[0].id
        moved = 0
        for story in self.state.stories:
            if story.category == category_id:
                story.category = replacement
                moved += 1
        if self.state.editing is not None and self.state.editing.category == category_id:
            self.state.editing.category = replacement

        self._save_categories()
        self._save_stories()
        logger.info("Deleted category %s, moved %d stories to %s", category_id, moved, replacement)
        return Outcome.success(replacement)

    # ── Accounts ─────────────────────────────────────────────────

    @requires(Capability.MANAGE_ACCOUNTS)
    def add_account(self, label: str, role: AdminRole | str, password: str) -> Outcome:
        if not label.strip() or not password:
            return Outcome.rejected("A label and a password are required.")
        try:
            role = AdminRole(role)
        except ValueError:
            return Outcome.rejected(f"Unknown role: {role}.")
        if any(u.password == password for u in self.state.admin_users):
            return Outcome.rejected("That password is already in use.")
        user = AdminUser(
            id=unique_time_id(self._clock(), (u.id for u in self.state.admin_users)),
            role=role,
            password=password,
            label=label,
        )
        self.state.admin_users.append(user)
        self._save_admin_users()
        return Outcome.success(user)

    @requires(Capability.MANAGE_ACCOUNTS)
    def delete_account(self, account_id: str) -> Outcome:
        """Remove an account. Accounts holding the ADMIN role are never removed."""
        idx = _index_of(self.state.admin_users, account_id)
        if idx is None:
            return Outcome.rejected("Account not found.")
        if self.state.admin_users[idx].role is AdminRole.ADMIN:
            return Outcome.rejected("Cannot delete main admin account.")
        del self.state.admin_users[idx]
        self._save_admin_users()
        return Outcome.success()

    # ── Branding ─────────────────────────────────────────────────

    @requires(Capability.MANAGE_BRANDING)
    def update_branding(
        self,
        *,
        site_name: str | None = None,
        logo_url: str | None = None,
        promo_video_url: str | None = None,
    ) -> Outcome:
        """Apply the given branding fields; an empty string clears logo or video."""
        if site_name is not None and not site_name.strip():
            return Outcome.rejected("The site name cannot be empty.")
        branding = self.state.branding.model_copy()
        if site_name is not None:
            branding.site_name = site_name
        if logo_url is not None:
            branding.logo_url = logo_url or None
        if promo_video_url is not None:
            branding.promo_video_url = promo_video_url or None
        self.state.branding = branding
        self._save_branding()
        return Outcome.success(branding)

    # ── Image editing ────────────────────────────────────────────

    def start_image_edit(self, source: str, aspect_ratio: float, target: ImageTarget) -> Outcome:
        """Open the crop session, replacing any session already pending."""
        needed = (
            Capability.MANAGE_BRANDING
            if target.kind is ImageTargetKind.LOGO
            else Capability.EDIT_STORY
        )
        if not can(self.role, needed):
            return self._denied(needed)
        if aspect_ratio <= 0:
            return Outcome.rejected("Aspect ratio must be positive.")
        if target.kind is not ImageTargetKind.LOGO and not self._target_resolves(target):
            return Outcome.rejected("The photo's story is not open in the editor.")
        self.state.image_session = ImageEditSession(source, aspect_ratio, target)
        return Outcome.success(self.state.image_session)

    def start_cover_edit(self, source: str) -> Outcome:
        if self.state.editing is None:
            return Outcome.rejected("No story is open in the editor.")
        return self.start_image_edit(source, COVER_ASPECT, ImageTarget.cover(self.state.editing.id))

    def start_gallery_edit(self, source: str, item_id: str | None = None) -> Outcome:
        """Crop a new gallery photo, or re-crop *item_id* when given."""
        if self.state.editing is None:
            return Outcome.rejected("No story is open in the editor.")
        story_id = self.state.editing.id
        target = (
            ImageTarget.new_gallery_photo(story_id)
            if item_id is None
            else ImageTarget.gallery_photo(story_id, item_id)
        )
        return self.start_image_edit(source, GALLERY_ASPECT, target)

    def adjust_zoom(self, value: float) -> Outcome:
        session = self.state.image_session
        if session is None:
            return Outcome.rejected("No image is being edited.")
        session.set_zoom(value)
        return Outcome.success(session.zoom)

    def adjust_offset(self, x: float, y: float) -> Outcome:
        session = self.state.image_session
        if session is None:
            return Outcome.rejected("No image is being edited.")
        session.set_offset(x, y)
        return Outcome.success((session.offset_x, session.offset_y))

    def cancel_image_edit(self) -> Outcome:
        self.state.image_session = None
        return Outcome.cancelled()

    async def apply_image_edit(self) -> Outcome:
        """Render the pending crop and deliver it to the session's target.

        The render cannot be interrupted.  If the session is cancelled or
        replaced meanwhile, the result still goes to its target as long as
        that target exists; otherwise it is dropped.
        """
        session = self.state.image_session
        if session is None:
            return Outcome.rejected("No image is being edited.")
        if session.applying:
            return Outcome.rejected("This image is already being applied.")
        session.applying = True

        images = self.config.images
        try:
            result = await session.render(
                images.target_width,
                background=images.background,
                quality=images.quality,
                preview_width=images.preview_width,
            )
        finally:
            session.applying = False
        if self.state.image_session is session:
            self.state.image_session = None

        if not self._deliver(session.target, result):
            logger.debug("Dropped crop result for %s; target no longer open", session.target)
            return Outcome.cancelled("The photo's destination is no longer open.")
        return Outcome.success(result)

    def _target_resolves(self, target: ImageTarget) -> bool:
        if target.kind is ImageTargetKind.LOGO:
            return can(self.role, Capability.MANAGE_BRANDING)
        draft = self.state.editing
        if draft is None or draft.id != target.story_id:
            return False
        if target.kind is ImageTargetKind.GALLERY_ITEM:
            return _index_of(draft.gallery, target.item_id or "") is not None
        return True

    def _deliver(self, target: ImageTarget, url: str) -> bool:
        if not self._target_resolves(target):
            return False
        if target.kind is ImageTargetKind.LOGO:
            return self.update_branding(logo_url=url).ok

        draft = self.state.editing
        if draft is None:
            return False
        if target.kind is ImageTargetKind.COVER:
            draft.image = url
        elif target.kind is ImageTargetKind.GALLERY_NEW:
            item_id = unique_time_id(self._clock(), (g.id for g in draft.gallery))
            draft.gallery.append(GalleryItem(id=item_id, url=url, caption=""))
        else:
            item = self._open_gallery_item(target.item_id or "")
            if item is None:
                return False
            item.url = url
        return True
