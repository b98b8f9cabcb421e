"""
Catalog Sources for YATL

This module provides the remote catalog adapters the repository manager merges.
A source returns the releases it knows about or raises SourceUnavailable.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import requests

from yatl.models.exceptions import SourceUnavailable
from yatl.models.release import GameRelease
from yatl.services.downloader import create_session


class CatalogSource:
    """Base class for release catalog sources."""

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger("YATL")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def fetch_releases(self) -> List[GameRelease]:
        """
        Fetch the releases offered by this source.

        Raises:
            SourceUnavailable: If the source cannot be queried
        """
        raise NotImplementedError


class StaticCatalogSource(CatalogSource):
    """A source serving a fixed list of releases."""

    def __init__(self, name: str, releases: Iterable[GameRelease]):
        super().__init__(name)
        self.releases = list(releases)

    def fetch_releases(self) -> List[GameRelease]:
        return list(self.releases)


class JsonCatalogSource(CatalogSource):
    """
    A source reading a JSON catalog document over HTTP(S).

    The document is either a list of release records or an object holding
    them under ``releases``. Each record carries ``profile``, ``build``,
    ``version``, ``timestamp`` (ISO-8601), ``url`` and optionally
    ``changelog``. Records that cannot be parsed are skipped.
    """

    def __init__(self, name: str, url: str,
                 session: Optional[requests.Session] = None, timeout: float = 30):
        super().__init__(name)
        self.url = url
        self.session = session or create_session()
        self.timeout = timeout

    def fetch_releases(self) -> List[GameRelease]:
        try:
            self.logger.info(f"Fetching release catalog '{self.name}' from {self.url}")
            response = self.session.get(self.url, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise SourceUnavailable(self.name, str(e))
        except ValueError as e:
            raise SourceUnavailable(self.name, f"invalid JSON: {e}")

        if isinstance(data, dict):
            data = data.get("releases")
        if not isinstance(data, list):
            raise SourceUnavailable(self.name, "expected a list of releases")

        releases = []
        for record in data:
            try:
                releases.append(GameRelease.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning(f"Skipping invalid release record in '{self.name}': {e}")

        self.logger.info(f"Parsed {len(releases)} releases from '{self.name}'")
        return releases


def build_sources(config: Iterable[Dict[str, Any]],
                  session: Optional[requests.Session] = None) -> List[CatalogSource]:
    """
    Build catalog sources from the ``catalog_sources`` core setting.

    Args:
        config: Entries with ``name`` and ``url``
        session: Shared HTTP session

    Returns:
        list: Sources in configured (priority) order
    """
    logger = logging.getLogger("YATL")
    sources: List[CatalogSource] = []
    for entry in config or []:
        try:
            sources.append(JsonCatalogSource(entry["name"], entry["url"], session=session))
        except (KeyError, TypeError) as e:
            logger.warning(f"Ignoring invalid catalog source entry {entry!r}: {e}")
    return sources
