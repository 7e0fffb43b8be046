"""Tests for the game, build and cache metadata models."""

from datetime import datetime, timezone

import pytest
from hypothesis import given, strategies as st

from warehouse.models import Build, CacheEntry, Game, Version
from warehouse.providers import VanillaProvider


ids = st.text(
    min_size=1,
    max_size=30,
    alphabet=st.characters(whitelist_categories=("Lu", "Ll", "Nd"), whitelist_characters=".-_"),
)
version_types = st.sampled_from(["release", "snapshot", "old_beta", "old_alpha", "pre"])


@given(version_id=ids, build_id=ids, version_type=version_types, url=st.none() | st.just("https://example/a.jar"))
def test_filename_depends_only_on_ids(version_id: str, build_id: str, version_type: str, url: str | None) -> None:
    """
    Property: The cache filename is a pure function of (version.id, build.id).
    """
    first = Build(id=build_id, version=Version.standard(version_id, version_type), download_url=url)
    second = Build(id=build_id, version=Version(id=version_id, version_type="other", is_stable=True))

    assert first.filename == second.filename
    assert first.filename == f"{version_id}-{build_id}.jar"


@given(version_id=ids, version_type=version_types)
def test_standard_version_stability_follows_type(version_id: str, version_type: str) -> None:
    """
    Property: Versions built from a type string are stable exactly when the type is "release".
    """
    version = Version.standard(version_id, version_type)

    assert version.is_stable == (version_type == "release")
    assert version.version_type == version_type


def test_explicit_stability_is_kept() -> None:
    version = Version(id="24w14a", version_type="snapshot", is_stable=True)
    assert version.is_stable


def test_game_keys_providers_by_name() -> None:
    game = Game(id="minecraft")
    provider = VanillaProvider(http_client=None)  # type: ignore[arg-type]

    game.add_provider(provider)

    assert game.get_provider("vanilla") is provider
    assert game.get_provider("fabric") is None
    assert game.list_providers() == [provider]


def test_cache_entry_round_trip() -> None:
    accessed = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

    assert CacheEntry.from_bytes(CacheEntry(accessed=accessed).to_bytes()).accessed == accessed


@pytest.mark.parametrize(
    "raw",
    [
        b"",
        b"\xff\xfe",
        b"[]",
        b'{"accessed": 12}',
        b'{"accessed": "yesterday"}',
        b'{"accessed": "2024-05-01T12:30:00"}',
    ],
)
def test_cache_entry_rejects_malformed_records(raw: bytes) -> None:
    with pytest.raises(ValueError):
        CacheEntry.from_bytes(raw)
