"""
Repository Management System for YATL

This module provides the RepositoryManager class which aggregates the releases
of every configured catalog source into one deduplicated catalog.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from yatl.models.exceptions import SourceUnavailable
from yatl.models.release import Build, GameIdentifier, GameRelease, Profile
from yatl.services.catalog_sources import CatalogSource
from yatl.services.events import EventManager, Events


class RepositoryManager:
    """
    Release catalog for YATL.

    This class handles:
    - Querying every catalog source in priority order
    - Merging releases per identifier (latest timestamp wins)
    - Publishing the merged catalog as an immutable snapshot
    - Reporting unavailable sources without failing the refresh
    """

    def __init__(self, sources: Iterable[CatalogSource],
                 event_manager: Optional[EventManager] = None,
                 refresh_on_init: bool = False):
        """
        Initialize the repository manager.

        Args:
            sources: Catalog sources, the first one has the highest priority
            event_manager: Event manager for UI communication
            refresh_on_init: Whether to query the sources right away
        """
        self.logger = logging.getLogger("YATL")
        self.sources: List[CatalogSource] = list(sources)
        self.event_manager = event_manager

        self._releases: FrozenSet[GameRelease] = frozenset()
        self._lock = threading.Lock()
        self.last_fetch_time: Optional[datetime] = None

        self.logger.info(f"Repository manager initialized with {len(self.sources)} sources")

        if refresh_on_init:
            self.refresh()

    def refresh(self) -> List[str]:
        """
        Query all sources and replace the catalog with the merged result.

        Returns:
            list: Names of the sources that could not be queried
        """
        if self.event_manager:
            self.event_manager.emit(Events.RELEASE_FETCH_STARTED,
                                    sources=[source.name for source in self.sources])

        fetched: List[Tuple[CatalogSource, List[GameRelease]]] = []
        unavailable: List[str] = []

        for source in self.sources:
            try:
                fetched.append((source, source.fetch_releases()))
            except SourceUnavailable as e:
                self._report_unavailable(source, e)
                unavailable.append(source.name)
            except Exception as e:
                self._report_unavailable(source, SourceUnavailable(source.name, str(e)))
                unavailable.append(source.name)

        merged = self.merge(releases for _, releases in fetched)

        with self._lock:
            self._releases = merged
            self.last_fetch_time = datetime.now()

        self.logger.info(f"Release catalog refreshed: {len(merged)} releases "
                         f"from {len(fetched)}/{len(self.sources)} sources")

        if self.event_manager:
            self.event_manager.emit(Events.RELEASE_FETCH_COMPLETED,
                                    count=len(merged),
                                    unavailable=list(unavailable))
        return unavailable

    @staticmethod
    def merge(release_lists: Iterable[Iterable[GameRelease]]) -> FrozenSet[GameRelease]:
        """
        Merge release lists given in priority order.

        For every identifier the release with the latest timestamp is kept. On
        equal timestamps the release seen first (higher priority) is kept.

        Args:
            release_lists: One list per source, highest priority first

        Returns:
            frozenset: Deduplicated releases
        """
        by_id: Dict[GameIdentifier, GameRelease] = {}
        for releases in release_lists:
            for release in releases:
                current = by_id.get(release.id)
                if current is None or release.timestamp > current.timestamp:
                    by_id[release.id] = release
        return frozenset(by_id.values())

    def _report_unavailable(self, source: CatalogSource, error: SourceUnavailable):
        self.logger.warning(f"Skipping catalog source '{source.name}': {error}")
        if self.event_manager:
            self.event_manager.emit(Events.SOURCE_UNAVAILABLE,
                                    source=source.name,
                                    error=error)

    def get_releases(self) -> FrozenSet[GameRelease]:
        """
        Get the current catalog snapshot.

        Returns:
            frozenset: All known releases
        """
        with self._lock:
            return self._releases

    def find_release(self, game_id: GameIdentifier) -> Optional[GameRelease]:
        """Get the release for an identifier, or None if the catalog has none."""
        for release in self.get_releases():
            if release.id == game_id:
                return release
        return None

    def get_releases_for(self, profile: Optional[Profile] = None,
                         include_pre_releases: bool = False) -> List[GameRelease]:
        """
        Get releases in display order.

        Args:
            profile: Only return releases of this profile (all if None)
            include_pre_releases: Whether to include non-stable builds

        Returns:
            list: Releases sorted by profile, newest first within a profile
        """
        releases = [
            release for release in self.get_releases()
            if (profile is None or release.id.profile == profile)
            and (include_pre_releases or release.id.build == Build.STABLE)
        ]
        profile_order = list(Profile)
        releases.sort(key=lambda release: release.timestamp, reverse=True)
        releases.sort(key=lambda release: profile_order.index(release.id.profile))
        return releases

    def select_default_release(self, profile: Optional[Profile] = None,
                               last_played: Optional[GameIdentifier] = None,
                               installed: Iterable[GameIdentifier] = (),
                               include_pre_releases: bool = False) -> Optional[GameRelease]:
        """
        Pick the release to preselect for a profile.

        The last played game wins, then the first installed one, then the
        first release in display order.
        """
        releases = self.get_releases_for(profile, include_pre_releases)
        installed = set(installed)
        for release in releases:
            if last_played is not None and release.id == last_played:
                return release
        for release in releases:
            if release.id in installed:
                return release
        return releases[0] if releases else None
