from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

import pytest
from PIL import Image

from watchstore.domain.errors import EntityValidationError
from watchstore.handlers.png_handler import PngFileHandler
from watchstore.repositories.directory import DirectoryRepository


def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


def _icon(color: str = "red", size: Tuple[int, int] = (4, 3)) -> Image.Image:
    return Image.new("RGB", size, color)


def test_round_trip_preserves_pixels(tmp_path: Path) -> None:
    handler = PngFileHandler()
    path = tmp_path / "icon.png"
    icon = _icon()

    handler.save(path, icon)
    loaded = handler.load(path)

    assert loaded is not None
    assert loaded.size == (4, 3)
    assert loaded.mode == "RGB"
    assert loaded.tobytes() == icon.tobytes()
    assert [p.name for p in tmp_path.iterdir()] == ["icon.png"]


def test_loaded_image_is_detached_from_file(tmp_path: Path) -> None:
    handler = PngFileHandler()
    path = tmp_path / "icon.png"
    handler.save(path, _icon())

    loaded = handler.load(path)
    path.unlink()

    assert loaded is not None
    assert loaded.getpixel((0, 0)) == (255, 0, 0)


@pytest.mark.parametrize("content", [b"", b"not an image", b"\x89PNG\r\n\x1a\n\x00\x00"])
def test_unreadable_files_load_as_none(tmp_path: Path, content: bytes) -> None:
    path = tmp_path / "broken.png"
    path.write_bytes(content)

    assert PngFileHandler().load(path) is None


def test_missing_file_loads_as_none(tmp_path: Path) -> None:
    assert PngFileHandler().load(tmp_path / "absent.png") is None


def test_validate_requires_positive_dimensions() -> None:
    handler = PngFileHandler()
    assert handler.validate(_icon())
    assert not handler.validate(Image.new("RGB", (0, 0)))
    assert not handler.validate({"width": 1})  # type: ignore[arg-type]


def test_matches_png_extension() -> None:
    handler = PngFileHandler()
    assert handler.matches(Path("icon.png"))
    assert not handler.matches(Path("icon.yml"))
    assert not handler.matches(Path(".icon.png"))


def test_directory_repository_of_images(tmp_path: Path) -> None:
    directory = tmp_path / "icons"
    with DirectoryRepository(directory, PngFileHandler(), watch=False) as repo:
        repo.load_or_create({"red": _icon("red")})
        repo.save("blue", _icon("blue", (2, 2)))
        with pytest.raises(EntityValidationError):
            repo.save("empty", Image.new("RGB", (0, 0)))

    assert sorted(p.name for p in directory.iterdir()) == ["blue.png", "red.png"]

    with DirectoryRepository(directory, PngFileHandler(), watch=False) as reopened:
        reopened.load_or_create()
        blue = reopened.find("blue")
        assert reopened.get_all_identifiers() == {"blue", "red"}
        assert blue is not None and blue.size == (2, 2)
        assert blue.getpixel((1, 1)) == (0, 0, 255)


def test_external_image_is_picked_up(tmp_path: Path) -> None:
    changes: List[Tuple[Any, Optional[Image.Image], Optional[Image.Image]]] = []
    repo: DirectoryRepository[str, Image.Image] = DirectoryRepository(
        tmp_path / "icons", PngFileHandler(), debounce_seconds=0.2
    )
    repo.on_entity_changed(lambda i, o, n: changes.append((i, o, n)))
    try:
        repo.load_or_create()
        _icon("green").save(repo.directory / "green.png")

        assert _wait_until(lambda: repo.find("green") is not None)
        repo.flush(timeout=2.0)
        assert len(changes) == 1
        identity, old, new = changes[0]
        assert identity == "green" and old is None
        assert new is not None and new.getpixel((0, 0)) == (0, 128, 0)
    finally:
        repo.close()
