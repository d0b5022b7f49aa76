from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Iterator, List, Optional, Tuple

import pytest
from pydantic import BaseModel, ConfigDict

from watchstore.domain.errors import (
    ConfigNotLoadedError,
    ConfigurationError,
    ConfigValidationError,
)
from watchstore.infrastructure.defaults import DirectoryDefaults
from watchstore.repositories.config_factory import ConfigFactory


class ServerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    motd: str = "Welcome"
    max_players: int = 20


Change = Tuple[Optional[ServerConfig], ServerConfig]


def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "server.yml"


@pytest.fixture
def factories() -> Iterator[List[ConfigFactory[Any]]]:
    created: List[ConfigFactory[Any]] = []
    yield created
    for factory in created:
        factory.close()


def _factory(
    path: Path, created: List[ConfigFactory[Any]], **kwargs: Any
) -> ConfigFactory[ServerConfig]:
    kwargs.setdefault("watch", False)
    kwargs.setdefault("debounce_seconds", 0.2)
    factory = ConfigFactory.yaml(path, ServerConfig, **kwargs)
    created.append(factory)
    return factory


def test_get_config_before_load_raises(config_path: Path, factories: List[ConfigFactory[Any]]) -> None:
    factory = _factory(config_path, factories)
    with pytest.raises(ConfigNotLoadedError, match="Configuration not loaded"):
        factory.get_config()


def test_missing_file_is_created_from_default(
    config_path: Path, factories: List[ConfigFactory[Any]]
) -> None:
    factory = _factory(config_path, factories)
    changes: List[Change] = []
    factory.on_config_changed(lambda old, new: changes.append((old, new)))

    factory.load_or_create(ServerConfig())
    factory.flush(timeout=2.0)

    assert factory.exists()
    assert factory.get_config() == ServerConfig()
    assert "motd: Welcome" in config_path.read_text(encoding="utf-8")
    assert changes == [(None, ServerConfig())]


def test_existing_file_wins_over_default(config_path: Path, factories: List[ConfigFactory[Any]]) -> None:
    config_path.write_text("motd: Hi\nmax_players: 5\n", encoding="utf-8")
    factory = _factory(config_path, factories)

    factory.load_or_create(ServerConfig())

    assert factory.get_config() == ServerConfig(motd="Hi", max_players=5)


def test_missing_file_is_seeded_from_bundled_defaults(
    tmp_path: Path, config_path: Path, factories: List[ConfigFactory[Any]]
) -> None:
    bundled = tmp_path / "bundled"
    bundled.mkdir()
    (bundled / "server.yml").write_text("motd: Bundled\n", encoding="utf-8")
    factory = _factory(config_path, factories, defaults=DirectoryDefaults(bundled))

    factory.load_or_create(ServerConfig())

    assert factory.get_config() == ServerConfig(motd="Bundled")
    assert config_path.read_text(encoding="utf-8") == "motd: Bundled\n"


def test_invalid_default_is_rejected(config_path: Path, factories: List[ConfigFactory[Any]]) -> None:
    factory = _factory(config_path, factories)
    with pytest.raises(ConfigValidationError):
        factory.load_or_create(ServerConfig(max_players=0), validator=lambda c: c.max_players > 0)
    assert not config_path.exists()


def test_unparsable_file_raises_configuration_error(
    config_path: Path, factories: List[ConfigFactory[Any]]
) -> None:
    config_path.write_text("motd: [broken\n", encoding="utf-8")
    factory = _factory(config_path, factories)

    with pytest.raises(ConfigurationError, match="Failed to parse"):
        factory.load_or_create(ServerConfig())


def test_save_validates_and_notifies(config_path: Path, factories: List[ConfigFactory[Any]]) -> None:
    factory = _factory(config_path, factories)
    changes: List[Change] = []
    factory.on_config_changed(lambda old, new: changes.append((old, new)))
    factory.load_or_create(ServerConfig())

    updated = ServerConfig(motd="Updated")
    factory.save(updated)
    factory.save(updated)
    with pytest.raises(ConfigValidationError):
        factory.save(ServerConfig(motd=""), validator=lambda c: bool(c.motd))
    factory.flush(timeout=2.0)

    assert factory.get_config() == updated
    assert changes == [(None, ServerConfig()), (ServerConfig(), updated)]


def test_reload_config_picks_up_manual_edit(config_path: Path, factories: List[ConfigFactory[Any]]) -> None:
    factory = _factory(config_path, factories)
    factory.load_or_create(ServerConfig())
    config_path.write_text("motd: Edited\n", encoding="utf-8")

    factory.reload_config()
    assert factory.get_config().motd == "Edited"

    with pytest.raises(ConfigValidationError):
        factory.reload_config(validator=lambda c: c.motd == "other")
    assert factory.get_config().motd == "Edited"


def test_external_edit_reloads_automatically(
    config_path: Path, factories: List[ConfigFactory[Any]]
) -> None:
    factory = _factory(config_path, factories, watch=True)
    changes: List[Change] = []
    factory.on_config_changed(lambda old, new: changes.append((old, new)))
    factory.load_or_create(ServerConfig())
    assert factory.watching

    config_path.write_text("motd: Live\nmax_players: 50\n", encoding="utf-8")

    expected = ServerConfig(motd="Live", max_players=50)
    assert _wait_until(lambda: factory.get_config() == expected)
    factory.flush(timeout=2.0)
    assert changes[-1] == (ServerConfig(), expected)


def test_broken_external_edit_keeps_last_config(
    config_path: Path, factories: List[ConfigFactory[Any]], caplog: pytest.LogCaptureFixture
) -> None:
    factory = _factory(config_path, factories, watch=True)
    factory.load_or_create(ServerConfig(motd="Good"))

    with caplog.at_level("ERROR", logger="watchstore.repositories.config_factory"):
        config_path.write_text("motd: [broken\n", encoding="utf-8")
        assert _wait_until(lambda: "Failed to reload configuration" in caplog.text)

    assert factory.get_config() == ServerConfig(motd="Good")


def test_external_delete_keeps_last_config(
    config_path: Path, factories: List[ConfigFactory[Any]], caplog: pytest.LogCaptureFixture
) -> None:
    factory = _factory(config_path, factories, watch=True)
    factory.load_or_create(ServerConfig())

    with caplog.at_level("WARNING", logger="watchstore.repositories.config_factory"):
        config_path.unlink()
        assert _wait_until(lambda: "was deleted" in caplog.text)

    assert factory.get_config() == ServerConfig()


def test_other_files_in_directory_are_ignored(
    tmp_path: Path, config_path: Path, factories: List[ConfigFactory[Any]]
) -> None:
    factory = _factory(config_path, factories, watch=True)
    changes: List[Change] = []
    factory.on_config_changed(lambda old, new: changes.append((old, new)))
    factory.load_or_create(ServerConfig())
    factory.flush(timeout=2.0)

    (tmp_path / "other.yml").write_text("motd: Other\n", encoding="utf-8")
    time.sleep(0.5)
    factory.flush(timeout=2.0)

    assert changes == [(None, ServerConfig())]


def test_closed_factory_refuses_to_load(config_path: Path, factories: List[ConfigFactory[Any]]) -> None:
    factory = _factory(config_path, factories)
    factory.close()
    with pytest.raises(ConfigurationError, match="closed"):
        factory.load_or_create(ServerConfig())


def test_json_factory_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "server.json"
    with ConfigFactory.json(path, ServerConfig, watch=False) as factory:
        factory.load_or_create(ServerConfig(motd="Json"))

    with ConfigFactory.json(path, ServerConfig, watch=False) as reopened:
        reopened.load_or_create(ServerConfig())
        assert reopened.get_config() == ServerConfig(motd="Json")


def test_rejected_bundled_default_leaves_disk_unchanged(
    tmp_path: Path, config_path: Path, factories: List[ConfigFactory[Any]]
) -> None:
    bundled = tmp_path / "bundled"
    bundled.mkdir()
    (bundled / "server.yml").write_text("motd: ''\n", encoding="utf-8")
    factory = _factory(config_path, factories, defaults=DirectoryDefaults(bundled))

    with pytest.raises(ConfigValidationError):
        factory.load_or_create(ServerConfig(), validator=lambda c: bool(c.motd))

    assert not config_path.exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["bundled"]
    with pytest.raises(ConfigNotLoadedError):
        factory.get_config()


def test_unparsable_bundled_default_is_not_copied(
    tmp_path: Path, config_path: Path, factories: List[ConfigFactory[Any]]
) -> None:
    bundled = tmp_path / "bundled"
    bundled.mkdir()
    (bundled / "server.yml").write_text("motd: [broken\n", encoding="utf-8")
    factory = _factory(config_path, factories, defaults=DirectoryDefaults(bundled))

    with pytest.raises(ConfigurationError, match="Failed to parse"):
        factory.load_or_create(ServerConfig())

    assert not config_path.exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["bundled"]
