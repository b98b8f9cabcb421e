"""
Tests for the repository manager.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

from yatl.models.exceptions import SourceUnavailable
from yatl.models.release import Build, GameIdentifier, Profile
from yatl.models.repository_manager import RepositoryManager
from yatl.services.catalog_sources import CatalogSource, StaticCatalogSource
from yatl.services.events import Events

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def failing_source(name, error):
    source = Mock(spec=CatalogSource)
    source.name = name
    source.fetch_releases.side_effect = error
    return source


class TestMerge:
    """Tests for merging releases of several sources."""

    def test_later_timestamp_wins(self, release_factory):
        old = release_factory(timestamp=T0, url="https://a.example/old.zip")
        new = release_factory(timestamp=T0 + timedelta(days=1), url="https://b.example/new.zip")

        manager = RepositoryManager([StaticCatalogSource("a", [old]), StaticCatalogSource("b", [new])])
        manager.refresh()

        assert manager.get_releases() == frozenset({new})

    def test_later_timestamp_wins_regardless_of_order(self, release_factory):
        old = release_factory(timestamp=T0, url="https://a.example/old.zip")
        new = release_factory(timestamp=T0 + timedelta(days=1), url="https://b.example/new.zip")

        manager = RepositoryManager([StaticCatalogSource("b", [new]), StaticCatalogSource("a", [old])])
        manager.refresh()

        assert manager.get_releases() == frozenset({new})

    def test_tie_goes_to_first_source(self, release_factory):
        first = release_factory(url="https://first.example/game.zip")
        second = release_factory(url="https://second.example/game.zip")

        merged = RepositoryManager.merge([[first], [second]])

        assert merged == frozenset({first})

    def test_tie_within_one_source_keeps_first_occurrence(self, release_factory):
        first = release_factory(url="https://first.example/game.zip")
        second = release_factory(url="https://second.example/game.zip")

        assert RepositoryManager.merge([[first, second]]) == frozenset({first})

    def test_one_release_per_identifier(self, release_factory):
        releases = [release_factory(version=str(v % 3), timestamp=T0 + timedelta(hours=v)) for v in range(9)]

        merged = RepositoryManager.merge([releases])

        assert len(merged) == 3
        assert len({release.id for release in merged}) == 3


class TestRefresh:
    """Tests for refreshing the catalog."""

    def test_unavailable_source_is_skipped(self, release_factory, mock_event_manager):
        release = release_factory()
        broken = failing_source("broken", SourceUnavailable("broken", "timeout"))
        manager = RepositoryManager([broken, StaticCatalogSource("ok", [release])], mock_event_manager)

        unavailable = manager.refresh()

        assert unavailable == ["broken"]
        assert manager.get_releases() == frozenset({release})
        emitted = [c.args[0] for c in mock_event_manager.emit.call_args_list]
        assert Events.SOURCE_UNAVAILABLE in emitted
        assert emitted[0] == Events.RELEASE_FETCH_STARTED
        assert emitted[-1] == Events.RELEASE_FETCH_COMPLETED

    def test_unexpected_source_error_is_wrapped(self, mock_event_manager):
        broken = failing_source("broken", RuntimeError("bug"))
        manager = RepositoryManager([broken], mock_event_manager)

        assert manager.refresh() == ["broken"]
        _, kwargs = next(c for c in mock_event_manager.emit.call_args_list
                         if c.args[0] == Events.SOURCE_UNAVAILABLE)
        assert isinstance(kwargs["error"], SourceUnavailable)

    def test_all_sources_unavailable(self, release_factory):
        source = StaticCatalogSource("ok", [release_factory()])
        manager = RepositoryManager([source])
        manager.refresh()

        source.fetch_releases = Mock(side_effect=SourceUnavailable("ok", "down"))
        manager.refresh()

        assert manager.get_releases() == frozenset()

    def test_old_snapshot_is_untouched(self, release_factory):
        source = StaticCatalogSource("ok", [release_factory(version="1")])
        manager = RepositoryManager([source])
        manager.refresh()
        snapshot = manager.get_releases()

        source.releases = [release_factory(version="2")]
        manager.refresh()

        assert {r.id.version for r in snapshot} == {"1"}
        assert {r.id.version for r in manager.get_releases()} == {"2"}

    def test_refresh_on_init(self, release_factory):
        manager = RepositoryManager([StaticCatalogSource("ok", [release_factory()])], refresh_on_init=True)

        assert len(manager.get_releases()) == 1
        assert manager.last_fetch_time is not None


class TestQueries:
    """Tests for filtered and ordered catalog queries."""

    @pytest.fixture
    def manager(self, release_factory):
        releases = [
            release_factory(Profile.OMEGA, Build.STABLE, "1.0.0", T0),
            release_factory(Profile.OMEGA, Build.STABLE, "1.1.0", T0 + timedelta(days=2)),
            release_factory(Profile.OMEGA, Build.NIGHTLY, "n-5", T0 + timedelta(days=3)),
            release_factory(Profile.ENGINE, Build.STABLE, "5.3.0", T0 + timedelta(days=5)),
        ]
        manager = RepositoryManager([StaticCatalogSource("ok", releases)])
        manager.refresh()
        return manager

    def test_stable_only_by_default(self, manager):
        versions = [r.id.version for r in manager.get_releases_for()]

        assert versions == ["1.1.0", "1.0.0", "5.3.0"]

    def test_pre_releases(self, manager):
        versions = [r.id.version for r in manager.get_releases_for(Profile.OMEGA, include_pre_releases=True)]

        assert versions == ["n-5", "1.1.0", "1.0.0"]

    def test_find_release(self, manager):
        game_id = GameIdentifier(Profile.ENGINE, Build.STABLE, "5.3.0")

        assert manager.find_release(game_id).id == game_id
        assert manager.find_release(GameIdentifier(Profile.ENGINE, Build.STABLE, "0")) is None

    def test_default_is_last_played(self, manager):
        last = GameIdentifier(Profile.OMEGA, Build.STABLE, "1.0.0")
        installed = {GameIdentifier(Profile.OMEGA, Build.STABLE, "1.1.0")}

        assert manager.select_default_release(Profile.OMEGA, last, installed).id == last

    def test_default_is_first_installed(self, manager):
        installed = {GameIdentifier(Profile.OMEGA, Build.STABLE, "1.0.0")}

        assert manager.select_default_release(Profile.OMEGA, None, installed).id.version == "1.0.0"

    def test_default_is_newest(self, manager):
        assert manager.select_default_release(Profile.OMEGA).id.version == "1.1.0"

    def test_default_without_releases(self):
        assert RepositoryManager([]).select_default_release(Profile.OMEGA) is None
