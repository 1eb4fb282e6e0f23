"""Smoke tests for the CLI."""

from pathlib import Path

import pytest
from afterpath import __version__
from afterpath.cli import app
from afterpath.config import AfterpathConfig
from afterpath.content.lifecycle import ContentController
from afterpath.store import KeyValueStore
from PIL import Image
from typer.testing import CliRunner


@pytest.fixture(autouse=True)
def _no_env(monkeypatch):
    for key in (
        "AFTERPATH_PASSWORD",
        "AFTERPATH_DATA_DIR",
        "AFTERPATH_IMAGE_WIDTH",
        "AFTERPATH_SUBMIT_DELAY",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def invoke(runner: CliRunner, data_dir: Path):
    """Run the app against a temporary data directory."""

    def _invoke(*args: str, input: str | None = None):
        return runner.invoke(app, ["--data-dir", str(data_dir), *args], input=input)

    return _invoke


@pytest.fixture
def photo(tmp_path: Path) -> Path:
    path = tmp_path / "photo.png"
    Image.new("RGB", (300, 200), (10, 120, 200)).save(path)
    return path


def _state(data_dir: Path) -> ContentController:
    return ContentController(KeyValueStore(data_dir), AfterpathConfig())


class TestCLI:
    """Tests for the CLI entry point."""

    def test_main_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "submit" in result.output
        assert "promote" in result.output

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestReading:
    def test_stories_lists_seeds(self, invoke) -> None:
        result = invoke("stories")
        assert result.exit_code == 0
        assert "career" in result.output
        assert "Welcome back" not in result.output

    def test_returning_visitor_notice(self, invoke) -> None:
        invoke("stories")
        result = invoke("stories")
        assert "Welcome back. Nothing changed." in result.output

    def test_story_detail(self, invoke) -> None:
        result = invoke("story", "1")
        assert result.exit_code == 0
        assert "What helped" in result.output

    def test_unknown_story(self, invoke) -> None:
        result = invoke("story", "missing")
        assert result.exit_code == 1

    def test_categories(self, invoke) -> None:
        result = invoke("categories")
        assert result.exit_code == 0
        assert "relationships" in result.output


class TestSubmissionFlow:
    def test_submit_then_promote(self, invoke, data_dir: Path) -> None:
        result = invoke("submit", "--slipped", "Lost my footing", "--helped", "Friends")
        assert result.exit_code == 0
        assert "sent for review" in result.output

        submission = _state(data_dir).state.submissions[0]
        result = invoke("promote", submission.id, "-p", "approver123")
        assert result.exit_code == 0
        assert f"story-{submission.id}" in result.output

        state = _state(data_dir)
        assert state.state.submissions == []
        assert state.get_story(f"story-{submission.id}").is_published is False

    def test_submit_prompts_for_missing_fields(self, invoke, data_dir: Path) -> None:
        result = invoke("submit", input="Lost my footing\nFriends\n")
        assert result.exit_code == 0
        assert _state(data_dir).state.submissions[0].helped == "Friends"

    def test_submit_with_photo(self, invoke, data_dir: Path, photo: Path) -> None:
        result = invoke("submit", "--slipped", "s", "--helped", "h", "--image", str(photo))
        assert result.exit_code == 0
        assert _state(data_dir).state.submissions[0].image.startswith("data:image/png")

    def test_queue_requires_reviewer(self, invoke) -> None:
        assert invoke("queue", "-p", "editor123").exit_code == 1
        assert invoke("queue", "-p", "approver123").exit_code == 0

    def test_wrong_password(self, invoke) -> None:
        result = invoke("queue", "-p", "nope")
        assert result.exit_code == 1
        assert "Invalid credentials." in result.output

    def test_discard_needs_confirmation(self, invoke, data_dir: Path) -> None:
        invoke("submit", "--slipped", "s", "--helped", "h")
        sub_id = _state(data_dir).state.submissions[0].id

        result = invoke("discard", sub_id, "-p", "approver123", input="n\n")
        assert result.exit_code == 1
        assert len(_state(data_dir).state.submissions) == 1

        result = invoke("discard", sub_id, "-p", "approver123", "--yes")
        assert result.exit_code == 0
        assert _state(data_dir).state.submissions == []


class TestEditorial:
    def test_editor_cannot_publish(self, invoke, data_dir: Path) -> None:
        result = invoke("unpublish", "1", "-p", "editor123")
        assert result.exit_code == 1
        assert _state(data_dir).get_story("1").is_published is True

    def test_unpublish_and_publish(self, invoke, data_dir: Path) -> None:
        assert invoke("unpublish", "1", "-p", "approver123").exit_code == 0
        assert _state(data_dir).get_story("1").is_published is False
        assert invoke("publish", "1", "-p", "approver123").exit_code == 0
        assert _state(data_dir).get_story("1").is_published is True

    def test_edit_story_with_cover(self, invoke, data_dir: Path, photo: Path) -> None:
        result = invoke(
            "edit-story", "1", "-p", "editor123",
            "--title", "New title", "--cover", str(photo), "--zoom", "1.2",
        )
        assert result.exit_code == 0
        story = _state(data_dir).get_story("1")
        assert story.title == "New title"
        assert story.image.startswith("data:image/jpeg;base64,")

    def test_new_story_needs_all_sections(self, invoke, data_dir: Path) -> None:
        result = invoke("edit-story", "-p", "editor123", "--title", "T", "--summary", "S")
        assert result.exit_code == 1
        assert "Missing story sections" in result.output

    def test_add_gallery_photo_with_caption(self, invoke, data_dir: Path, photo: Path) -> None:
        result = invoke(
            "edit-story", "2", "-p", "editor123",
            "--add-photo", str(photo), "--caption", "First day",
        )
        assert result.exit_code == 0
        gallery = _state(data_dir).get_story("2").gallery
        assert [item.caption for item in gallery] == ["First day"]

    def test_delete_story(self, invoke, data_dir: Path) -> None:
        assert invoke("delete-story", "1", "-p", "editor123", "--yes").exit_code == 1
        assert invoke("delete-story", "1", "-p", "sudeep@2006", "--yes").exit_code == 0
        assert _state(data_dir).get_story("1") is None

    def test_category_lifecycle(self, invoke, data_dir: Path) -> None:
        assert invoke("category-add", "Night Shifts", "-p", "editor123").exit_code == 0
        assert invoke("category-rename", "night-shifts", "Nights", "-p", "editor123").exit_code == 0
        result = invoke("category-delete", "career", "-p", "editor123", "--yes")
        assert result.exit_code == 0
        assert "relationships" in result.output

        state = _state(data_dir)
        assert "career" not in state.category_ids()
        assert state.get_story("1").category == "relationships"


class TestAdministration:
    def test_accounts_admin_only(self, invoke) -> None:
        assert invoke("accounts", "-p", "editor123").exit_code == 1
        result = invoke("accounts", "-p", "sudeep@2006")
        assert result.exit_code == 0
        assert "ADMIN" in result.output

    def test_add_and_delete_account(self, invoke, data_dir: Path) -> None:
        result = invoke(
            "account-add", "Night Desk", "--role", "editor",
            "--new-password", "night-pass", "-p", "sudeep@2006",
        )
        assert result.exit_code == 0
        assert _state(data_dir).authenticate("night-pass").ok

        assert invoke("account-delete", "1", "-p", "sudeep@2006").exit_code == 1
        assert invoke("account-delete", "2", "-p", "sudeep@2006").exit_code == 0

    def test_brand(self, invoke, data_dir: Path, photo: Path) -> None:
        result = invoke("brand", "-p", "sudeep@2006", "--name", "AFTER", "--logo", str(photo))
        assert result.exit_code == 0
        branding = _state(data_dir).state.branding
        assert branding.site_name == "AFTER"
        assert branding.logo_url.startswith("data:image/jpeg;base64,")


class TestCrop:
    def test_crop_writes_jpeg(self, invoke, tmp_path: Path, photo: Path) -> None:
        out = tmp_path / "out" / "cover.jpg"
        result = invoke("crop", str(photo), str(out), "--aspect", "4:3", "--width", "200")
        assert result.exit_code == 0
        with Image.open(out) as img:
            assert img.format == "JPEG"
            assert img.size == (200, 150)

    def test_bad_aspect(self, invoke, tmp_path: Path, photo: Path) -> None:
        result = invoke("crop", str(photo), str(tmp_path / "x.jpg"), "--aspect", "4:0")
        assert result.exit_code == 1

    def test_undecodable_source(self, invoke, tmp_path: Path) -> None:
        bogus = tmp_path / "bogus.png"
        bogus.write_bytes(b"not an image")
        result = invoke("crop", str(bogus), str(tmp_path / "x.jpg"))
        assert result.exit_code == 1
