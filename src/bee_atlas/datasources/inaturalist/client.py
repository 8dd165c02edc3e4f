"""
iNaturalist API client.

Low-level HTTP client for the iNaturalist API v1. Requests go through a
retrying session: urllib3 backs off on 429 and gateway errors, and a 429
that outlasts the retries comes back as the final response.

Fetches never raise for HTTP trouble. A failed request is logged and the
caller gets whatever was accumulated before it, which for curation is
better than losing a whole pull to one bad page.

API docs: https://api.inaturalist.org/v1/docs/
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from typing import Any
from urllib.parse import parse_qsl, urlsplit

import requests

from bee_atlas.services.http import session as default_session

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# API configuration
# ---------------------------------------------------------------------------
API_BASE = "https://api.inaturalist.org/v1"
MAX_PER_PAGE = 200  # API maximum for /observations
OBSERVATION_BATCH = 200
PLACE_BATCH = 200
TAXON_BATCH = 30  # /taxa rejects long id lists

ProgressCallback = Callable[[float], None]


def _noop(_percentage: float) -> None:
    pass


class InatClient:
    """Batched, rate-limit aware access to observations, places and taxa."""

    def __init__(self, api_base: str = API_BASE, session: requests.Session | None = None) -> None:
        self.api_base = api_base.rstrip("/")
        self.session = session or default_session

    # ---------------------------------------------------------------------------
    # Requests
    # ---------------------------------------------------------------------------

    def fetch_url(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any] | None:
        """GET a JSON document. Returns None on failure."""
        try:
            resp = self.session.get(url, params=params)
        except requests.RequestException:
            logger.exception("Error while fetching %s", url)
            return None

        if resp.status_code == 429:
            logger.error("Gave up on %s after repeated rate limiting", url)
            return None
        if not resp.ok:
            logger.error("Bad response %s while fetching %s", resp.status_code, url)
            return None
        data: dict[str, Any] = resp.json()
        return data

    def _fetch_by_ids(
        self,
        build: Callable[[str], tuple[str, dict[str, Any] | None]],
        batch_size: int,
        ids: Sequence[int | str],
        on_progress: ProgressCallback | None,
    ) -> list[dict[str, Any]]:
        report = on_progress or _noop
        report(0)

        total_batches = math.ceil(len(ids) / batch_size)
        results: list[dict[str, Any]] = []
        for i in range(total_batches):
            batch = ids[i * batch_size : (i + 1) * batch_size]
            url, params = build(",".join(str(x) for x in batch))
            data = self.fetch_url(url, params)
            if data is None:
                logger.warning("Stopping id lookup after %d of %d batch(es)", i, total_batches)
                break
            results.extend(data.get("results", []))
            report(100 * (i + 1) / total_batches)
        return results

    # ---------------------------------------------------------------------------
    # Public helpers
    # ---------------------------------------------------------------------------

    def fetch_observations_by_ids(
        self, ids: Sequence[int | str], on_progress: ProgressCallback | None = None
    ) -> list[dict[str, Any]]:
        """GET /observations?id=... in batches of 200."""
        return self._fetch_by_ids(
            lambda joined: (f"{self.api_base}/observations", {"per_page": MAX_PER_PAGE, "id": joined}),
            OBSERVATION_BATCH,
            ids,
            on_progress,
        )

    def fetch_places_by_ids(
        self, ids: Sequence[int | str], on_progress: ProgressCallback | None = None
    ) -> list[dict[str, Any]]:
        """GET /places/{ids} in batches of 200."""
        return self._fetch_by_ids(
            lambda joined: (f"{self.api_base}/places/{joined}", None),
            PLACE_BATCH,
            ids,
            on_progress,
        )

    def fetch_taxa_by_ids(
        self, ids: Sequence[int | str], on_progress: ProgressCallback | None = None
    ) -> list[dict[str, Any]]:
        """GET /taxa/{ids} in batches of 30."""
        return self._fetch_by_ids(
            lambda joined: (f"{self.api_base}/taxa/{joined}", None),
            TAXON_BATCH,
            ids,
            on_progress,
        )

    def fetch_observations_page(self, params: dict[str, Any], page: int = 1) -> dict[str, Any] | None:
        """GET one page of /observations for a query."""
        return self.fetch_url(
            f"{self.api_base}/observations",
            {**params, "per_page": MAX_PER_PAGE, "page": page},
        )

    def fetch_observation_pages(
        self, params: dict[str, Any], on_progress: ProgressCallback | None = None
    ) -> list[dict[str, Any]]:
        """Every observation matching a query.

        The page count comes from ``total_results`` on the first page. A page
        that fails ends the pull with what was fetched so far.
        """
        report = on_progress or _noop
        report(0)

        first = self.fetch_observations_page(params, 1)
        if first is None:
            return []
        results: list[dict[str, Any]] = list(first.get("results", []))
        total_pages = math.ceil(int(first.get("total_results") or 0) / MAX_PER_PAGE)
        if total_pages <= 1:
            report(100)
            return results
        report(100 / total_pages)

        for page in range(2, total_pages + 1):
            data = self.fetch_observations_page(params, page)
            if data is None:
                logger.warning("Stopping pull at page %d of %d", page, total_pages)
                break
            results.extend(data.get("results", []))
            report(100 * page / total_pages)
        return results

    def fetch_source_observations(
        self,
        source: str,
        min_date: str | None = None,
        max_date: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[dict[str, Any]]:
        """Every observation of a project in a date range."""
        params: dict[str, Any] = {"project_id": source}
        if min_date:
            params["d1"] = min_date
        if max_date:
            params["d2"] = max_date
        results = self.fetch_observation_pages(params, on_progress)
        logger.info("Fetched %d observation(s) from source %s", len(results), source)
        return results

    def fetch_by_url(self, url: str, on_progress: ProgressCallback | None = None) -> list[dict[str, Any]]:
        """Every observation matching the query string of an observations URL.

        Accepts website search links (``https://www.inaturalist.org/observations?...``)
        as well as API URLs. Only the query is kept; paging is replaced.
        """
        if not url:
            return []
        params = {
            key: value
            for key, value in parse_qsl(urlsplit(url).query, keep_blank_values=False)
            if key not in ("page", "per_page")
        }
        results = self.fetch_observation_pages(params, on_progress)
        logger.info("Fetched %d observation(s) from %s", len(results), url)
        return results
