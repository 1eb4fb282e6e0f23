"""CLI interface for afterpath."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from afterpath.config import AfterpathConfig, load_config, merge_cli_overrides
from afterpath.content.lifecycle import Confirm, ContentController, Outcome
from afterpath.content.models import AdminRole, Story
from afterpath.errors import MediaReadError
from afterpath.permissions import Capability
from afterpath.shared.images import (
    LOGO_ASPECT,
    ImageTarget,
    decode_data_url,
    parse_aspect,
    read_media_file,
    transform_image,
)

app = typer.Typer(
    name="afterpath",
    help="Read, submit and curate recovery stories.",
    no_args_is_help=True,
)

console = Console()

PasswordOption = Annotated[
    str,
    typer.Option(
        "--password",
        "-p",
        help="Editorial account password.",
        envvar="AFTERPATH_PASSWORD",
        prompt=True,
        hide_input=True,
    ),
]
YesOption = Annotated[
    bool,
    typer.Option("--yes", "-y", help="Do not ask for confirmation."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from afterpath import __version__

        console.print(f"afterpath {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    data_dir: Annotated[
        Optional[Path],
        typer.Option("--data-dir", "-d", help="Directory holding the stored data."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .afterpath.toml file."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log state changes to stderr."),
    ] = False,
) -> None:
    """afterpath - what people did next."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    config = load_config(config_path)
    ctx.obj = merge_cli_overrides(config, data_dir=data_dir)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _controller(ctx: typer.Context) -> ContentController:
    config: AfterpathConfig = ctx.obj if ctx.obj is not None else load_config()
    return ContentController.from_config(config)


def _check(outcome: Outcome, success: str | None = None) -> Outcome:
    """Print the outcome; exit with status 1 unless it succeeded."""
    if outcome.ok:
        if success:
            console.print(f"[green]{success}[/green]")
        return outcome
    label = "Cancelled" if outcome.status == "cancelled" else "Error"
    console.print(f"[red]{label}:[/red] {outcome.message or outcome.status.value}")
    raise typer.Exit(1)


def _signed_in(ctx: typer.Context, password: str) -> ContentController:
    controller = _controller(ctx)
    _check(controller.authenticate(password))
    return controller


def _confirm(yes: bool) -> Confirm:
    if yes:
        return lambda _prompt: True
    return lambda prompt: typer.confirm(prompt, default=False)


def _read_media(path: Path, kind: str) -> str:
    try:
        return read_media_file(path, kind=kind)
    except MediaReadError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc


def _crop(
    controller: ContentController,
    started: Outcome,
    zoom: float,
    x: float,
    y: float,
) -> None:
    _check(started)
    controller.adjust_zoom(zoom)
    controller.adjust_offset(x, y)
    _check(asyncio.run(controller.apply_image_edit()))


def _story_table(stories: list[Story], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Status")
    for story in stories:
        table.add_row(
            story.id,
            story.title,
            story.category,
            "live" if story.is_published else "draft",
        )
    return table


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


@app.command()
def stories(
    ctx: typer.Context,
    category: Annotated[
        Optional[str],
        typer.Option("--category", help="Only stories in this category."),
    ] = None,
    drafts: Annotated[
        bool,
        typer.Option("--all", help="Include drafts (requires a password)."),
    ] = False,
    password: Annotated[
        Optional[str],
        typer.Option("--password", "-p", envvar="AFTERPATH_PASSWORD", hide_input=True),
    ] = None,
) -> None:
    """List published stories."""
    if drafts:
        controller = _signed_in(ctx, password or typer.prompt("Password", hide_input=True))
        listed = [
            s for s in controller.state.stories if category is None or s.category == category
        ]
    else:
        controller = _controller(ctx)
        listed = controller.published_stories(category)

    branding = controller.state.branding
    if controller.returning_visitor and not drafts:
        console.print("[dim]Welcome back. Nothing changed.[/dim]")
    console.print(_story_table(listed, branding.site_name))


@app.command()
def story(
    ctx: typer.Context,
    story_id: Annotated[str, typer.Argument(help="Story id.")],
) -> None:
    """Show one published story."""
    controller = _controller(ctx)
    found = controller.get_story(story_id)
    if found is None or not found.is_published:
        console.print(f"[red]Error:[/red] No published story {story_id}")
        raise typer.Exit(1)

    console.print(f"[bold]{found.title}[/bold]")
    console.print(f"[italic]{found.summary}[/italic]\n")
    for heading, text in (
        ("What slipped", found.sections.slipped),
        ("What was harder", found.sections.harder),
        ("What helped", found.sections.helped),
        ("Today", found.sections.today),
    ):
        console.print(f"[bold]{heading}[/bold]")
        console.print(text or "...")
        console.print()
    if found.gallery:
        console.print(f"{len(found.gallery)} gallery photo(s)")


@app.command()
def submit(
    ctx: typer.Context,
    slipped: Annotated[str, typer.Option("--slipped", prompt="What slipped?")],
    helped: Annotated[str, typer.Option("--helped", prompt="What helped?")],
    image: Annotated[
        Optional[Path],
        typer.Option("--image", help="Optional photo to attach."),
    ] = None,
) -> None:
    """Share your own story anonymously."""
    controller = _controller(ctx)
    outcome = asyncio.run(controller.submit_story(slipped, helped, image))
    _check(outcome, "Thank you. Your story was sent for review.")


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


@app.command()
def queue(ctx: typer.Context, password: PasswordOption) -> None:
    """List pending submissions, newest first."""
    controller = _signed_in(ctx, password)
    if Capability.REVIEW_SUBMISSIONS not in controller.capabilities:
        _check(Outcome.denied("Your role cannot review submissions."))

    table = Table(title="Pending submissions")
    table.add_column("ID", style="cyan")
    table.add_column("What slipped")
    table.add_column("Photo")
    for sub in controller.pending_submissions():
        preview = sub.slipped[:60] + "..." if len(sub.slipped) > 60 else sub.slipped
        table.add_row(sub.id, preview, "yes" if sub.image else "")
    console.print(table)


@app.command()
def promote(
    ctx: typer.Context,
    submission_id: Annotated[str, typer.Argument(help="Submission id.")],
    password: PasswordOption,
) -> None:
    """Turn a submission into a draft story."""
    controller = _signed_in(ctx, password)
    outcome = _check(controller.promote_submission(submission_id))
    console.print(f"[green]Created draft {outcome.value.id}[/green]")


@app.command()
def discard(
    ctx: typer.Context,
    submission_id: Annotated[str, typer.Argument(help="Submission id.")],
    password: PasswordOption,
    yes: YesOption = False,
) -> None:
    """Permanently discard a submission."""
    controller = _signed_in(ctx, password)
    _check(controller.discard_submission(submission_id, _confirm(yes)), "Submission discarded.")


@app.command()
def publish(
    ctx: typer.Context,
    story_id: Annotated[str, typer.Argument(help="Story id.")],
    password: PasswordOption,
) -> None:
    """Make a story live."""
    controller = _signed_in(ctx, password)
    _check(controller.publish_story(story_id), f"Story {story_id} is live.")


@app.command()
def unpublish(
    ctx: typer.Context,
    story_id: Annotated[str, typer.Argument(help="Story id.")],
    password: PasswordOption,
) -> None:
    """Return a story to draft."""
    controller = _signed_in(ctx, password)
    _check(controller.unpublish_story(story_id), f"Story {story_id} is a draft again.")


# ---------------------------------------------------------------------------
# Editing
# ---------------------------------------------------------------------------


@app.command("edit-story")
def edit_story(
    ctx: typer.Context,
    password: PasswordOption,
    story_id: Annotated[
        Optional[str],
        typer.Argument(help="Story to edit; omit to write a new one."),
    ] = None,
    title: Annotated[Optional[str], typer.Option("--title")] = None,
    summary: Annotated[Optional[str], typer.Option("--summary")] = None,
    category: Annotated[Optional[str], typer.Option("--category")] = None,
    slipped: Annotated[Optional[str], typer.Option("--slipped")] = None,
    harder: Annotated[Optional[str], typer.Option("--harder")] = None,
    helped: Annotated[Optional[str], typer.Option("--helped")] = None,
    today: Annotated[Optional[str], typer.Option("--today")] = None,
    cover: Annotated[
        Optional[Path],
        typer.Option("--cover", help="Cover photo, cropped to 16:9."),
    ] = None,
    photo: Annotated[
        Optional[Path],
        typer.Option("--add-photo", help="Gallery photo, cropped to 4:3."),
    ] = None,
    caption: Annotated[str, typer.Option("--caption", help="Caption for --add-photo.")] = "",
    zoom: Annotated[float, typer.Option("--zoom", min=0.1, max=3.0)] = 1.0,
    x: Annotated[float, typer.Option("--x", min=-300, max=300)] = 0.0,
    y: Annotated[float, typer.Option("--y", min=-300, max=300)] = 0.0,
) -> None:
    """Create or edit a story, optionally cropping in a cover or gallery photo."""
    controller = _signed_in(ctx, password)
    opened = controller.create_story() if story_id is None else controller.edit_story(story_id)
    draft = _check(opened).value

    for name, value in (("title", title), ("summary", summary), ("category", category)):
        if value is not None:
            setattr(draft, name, value)
    for name, value in (
        ("slipped", slipped),
        ("harder", harder),
        ("helped", helped),
        ("today", today),
    ):
        if value is not None:
            setattr(draft.sections, name, value)

    if cover is not None:
        _crop(controller, controller.start_cover_edit(_read_media(cover, "image")), zoom, x, y)
    if photo is not None:
        _crop(controller, controller.start_gallery_edit(_read_media(photo, "image")), zoom, x, y)
        if caption:
            controller.update_gallery_caption(draft.gallery[-1].id, caption)

    outcome = _check(controller.save_story())
    console.print(f"[green]Saved story {outcome.value.id}[/green]")


@app.command("delete-story")
def delete_story(
    ctx: typer.Context,
    story_id: Annotated[str, typer.Argument(help="Story id.")],
    password: PasswordOption,
    yes: YesOption = False,
) -> None:
    """Permanently delete a story."""
    controller = _signed_in(ctx, password)
    _check(controller.delete_story(story_id, _confirm(yes)), f"Deleted story {story_id}.")


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@app.command()
def categories(ctx: typer.Context) -> None:
    """List categories."""
    controller = _controller(ctx)
    table = Table(title="Categories")
    table.add_column("ID", style="cyan")
    table.add_column("Label")
    table.add_column("Live stories", justify="right")
    for cat in controller.state.categories:
        table.add_row(cat.id, cat.label, str(len(controller.published_stories(cat.id))))
    console.print(table)


@app.command("category-add")
def category_add(
    ctx: typer.Context,
    label: Annotated[str, typer.Argument(help="Category name.")],
    password: PasswordOption,
) -> None:
    """Add a category."""
    controller = _signed_in(ctx, password)
    outcome = _check(controller.add_category(label))
    console.print(f"[green]Added category {outcome.value.id}[/green]")


@app.command("category-rename")
def category_rename(
    ctx: typer.Context,
    category_id: Annotated[str, typer.Argument(help="Category id.")],
    label: Annotated[str, typer.Argument(help="New name.")],
    password: PasswordOption,
) -> None:
    """Rename a category."""
    controller = _signed_in(ctx, password)
    _check(controller.edit_category(category_id, label), "Category renamed.")


@app.command("category-delete")
def category_delete(
    ctx: typer.Context,
    category_id: Annotated[str, typer.Argument(help="Category id.")],
    password: PasswordOption,
    yes: YesOption = False,
) -> None:
    """Delete a category, moving its stories to the first remaining one."""
    controller = _signed_in(ctx, password)
    outcome = _check(controller.delete_category(category_id, _confirm(yes)))
    console.print(f"[green]Deleted {category_id}; stories moved to {outcome.value}[/green]")


# ---------------------------------------------------------------------------
# Accounts & branding
# ---------------------------------------------------------------------------


@app.command()
def accounts(ctx: typer.Context, password: PasswordOption) -> None:
    """List editorial accounts."""
    controller = _signed_in(ctx, password)
    if Capability.MANAGE_ACCOUNTS not in controller.capabilities:
        _check(Outcome.denied("Your role cannot manage accounts."))
    table = Table(title="Accounts")
    table.add_column("ID", style="cyan")
    table.add_column("Label")
    table.add_column("Role")
    for user in controller.state.admin_users:
        table.add_row(user.id, user.label, user.role.value)
    console.print(table)


@app.command("account-add")
def account_add(
    ctx: typer.Context,
    label: Annotated[str, typer.Argument(help="Who the account is for.")],
    role: Annotated[AdminRole, typer.Option("--role", case_sensitive=False)],
    new_password: Annotated[
        str,
        typer.Option("--new-password", prompt=True, hide_input=True, confirmation_prompt=True),
    ],
    password: PasswordOption,
) -> None:
    """Add an editorial account."""
    controller = _signed_in(ctx, password)
    outcome = _check(controller.add_account(label, role, new_password))
    console.print(f"[green]Added account {outcome.value.id} ({outcome.value.role.value})[/green]")


@app.command("account-delete")
def account_delete(
    ctx: typer.Context,
    account_id: Annotated[str, typer.Argument(help="Account id.")],
    password: PasswordOption,
) -> None:
    """Delete an editorial account."""
    controller = _signed_in(ctx, password)
    _check(controller.delete_account(account_id), f"Deleted account {account_id}.")


@app.command()
def brand(
    ctx: typer.Context,
    password: PasswordOption,
    name: Annotated[Optional[str], typer.Option("--name", help="Site name.")] = None,
    logo: Annotated[
        Optional[Path],
        typer.Option("--logo", help="Logo image, cropped square."),
    ] = None,
    video: Annotated[
        Optional[Path],
        typer.Option("--video", help="Promo video file."),
    ] = None,
) -> None:
    """Update site branding."""
    controller = _signed_in(ctx, password)
    if name is not None or video is not None:
        video_url = _read_media(video, "video") if video is not None else None
        _check(controller.update_branding(site_name=name, promo_video_url=video_url))
    if logo is not None:
        started = controller.start_image_edit(
            _read_media(logo, "image"), LOGO_ASPECT, ImageTarget.logo()
        )
        _crop(controller, started, 1.0, 0.0, 0.0)
    console.print(f"[green]Branding saved for {controller.state.branding.site_name}[/green]")


@app.command()
def crop(
    ctx: typer.Context,
    source: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    output: Annotated[Path, typer.Argument(help="Where to write the JPEG.")],
    aspect: Annotated[str, typer.Option("--aspect", help="Width:height, e.g. 16:9.")] = "16:9",
    width: Annotated[Optional[int], typer.Option("--width", min=1)] = None,
    zoom: Annotated[float, typer.Option("--zoom", min=0.1, max=3.0)] = 1.0,
    x: Annotated[float, typer.Option("--x", min=-300, max=300)] = 0.0,
    y: Annotated[float, typer.Option("--y", min=-300, max=300)] = 0.0,
) -> None:
    """Crop an image file the way uploaded photos are cropped."""
    config: AfterpathConfig = ctx.obj if ctx.obj is not None else load_config()
    try:
        ratio = parse_aspect(aspect)
    except ValueError as exc:
        console.print(f"[red]Error:[/red] Invalid aspect ratio: {aspect}")
        raise typer.Exit(1) from exc

    result = transform_image(
        str(source),
        ratio,
        width or config.images.target_width,
        x,
        y,
        zoom,
        background=config.images.background,
        quality=config.images.quality,
        preview_width=config.images.preview_width,
    )
    if not result.startswith("data:"):
        console.print(f"[red]Error:[/red] Could not decode {source}")
        raise typer.Exit(1)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(decode_data_url(result))
    console.print(f"[green]Wrote {output}[/green]")
