"""Shared fixtures: a store in tmp_path, a deterministic clock, and signed-in controllers."""

import base64
import io
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from afterpath.config import AfterpathConfig, ImagesConfig
from afterpath.content.lifecycle import ContentController
from afterpath.content.models import AdminRole
from afterpath.store import KeyValueStore

PASSWORDS = {
    AdminRole.ADMIN: "sudeep@2006",
    AdminRole.EDITOR: "editor123",
    AdminRole.APPROVER: "approver123",
}


class FakeClock:
    """Millisecond clock that moves forward one second per reading."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1000
        return self.now


def png_data_url(
    size: tuple[int, int] = (160, 90),
    color: tuple[int, ...] = (200, 30, 30),
    mode: str = "RGB",
) -> str:
    """Encode a solid-color PNG as a data URL."""
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def store(data_dir: Path) -> KeyValueStore:
    return KeyValueStore(data_dir)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config(data_dir: Path) -> AfterpathConfig:
    return AfterpathConfig(
        storage={"directory": str(data_dir)},
        images=ImagesConfig(target_width=120, preview_width=40),
    )


@pytest.fixture
def controller(store: KeyValueStore, config: AfterpathConfig, clock: FakeClock) -> ContentController:
    return ContentController(store, config, clock=clock)


@pytest.fixture
def sign_in(controller: ContentController) -> Callable[[AdminRole | None], ContentController]:
    """Sign the controller in as *role* (None logs out) and return it."""

    def _sign_in(role: AdminRole | None) -> ContentController:
        if role is None:
            controller.logout()
        else:
            assert controller.authenticate(PASSWORDS[role]).ok
        return controller

    return _sign_in


@pytest.fixture
def reload(store: KeyValueStore, config: AfterpathConfig, clock: FakeClock) -> Callable[[], ContentController]:
    """Build a fresh controller over the same storage, as after a restart."""

    def _reload() -> ContentController:
        return ContentController(store, config, clock=clock)

    return _reload


@pytest.fixture
def make_png() -> Callable[..., str]:
    return png_data_url
