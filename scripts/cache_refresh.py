#!/usr/bin/env python3
"""
Keep the complexity caches warm.

Run this periodically (e.g. from cron) against a running API:
1. Refresh the cached top-agencies maximum (max-cached)
2. Request per-agency complexity for the first 10 agencies
3. Optionally recompute the aggregated maximum (clear-cache)

Usage:
    python scripts/cache_refresh.py
    python scripts/cache_refresh.py --base-url http://api:8000 --aggregated
"""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

import httpx
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ecfr_analytics.config import Settings

console = Console()
logger = logging.getLogger("cache_refresh")

WARM_AGENCY_LIMIT = 10


class CacheRefresher:
    """Calls the cache-backed endpoints so that user requests hit warm cells."""

    def __init__(self, base_url: str, timeout: float = 300.0):
        # Exhaustive sweeps can take minutes on a cold database
        self.client = httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def _request(self, method: str, path: str) -> dict[str, Any]:
        response = self.client.request(method, path)
        response.raise_for_status()
        return response.json()

    def refresh_max(self) -> dict[str, Any] | None:
        """Refresh the top-agencies maximum. Returns the response, or None on failure."""
        logger.info("Refreshing max complexity score cache")
        try:
            data = self._request("GET", "/analysis/complexity_score/max-cached")
        except httpx.HTTPError as e:
            logger.error(f"Failed to refresh max complexity cache: {e}")
            return None
        logger.info(f"Max complexity score: {data['max_complexity_score']} (expires {data['cache_expires']})")
        return data

    def warm_agencies(self, limit: int = WARM_AGENCY_LIMIT) -> list[tuple[int, str, int | None]]:
        """Request complexity for the first `limit` agencies; (id, name, score or None)."""
        try:
            agencies = self._request("GET", "/data/agencies")["agencies"][:limit]
        except httpx.HTTPError as e:
            logger.error(f"Failed to list agencies: {e}")
            return []

        logger.info(f"Warming complexity for {len(agencies)} agencies")
        warmed = []
        for agency in agencies:
            try:
                data = self._request("GET", f"/analysis/complexity_score/agency/{agency['id']}")
                warmed.append((agency["id"], agency["name"], data["complexity_score"]))
            except httpx.HTTPError as e:
                logger.warning(f"Failed to warm agency {agency['id']}: {e}")
                warmed.append((agency["id"], agency["name"], None))
        return warmed

    def refresh_aggregated(self) -> int | None:
        """Recompute the aggregated maximum. Returns the new value, or None on failure."""
        logger.info("Recomputing max aggregated complexity score")
        try:
            data = self._request("POST", "/analysis/complexity_score/max-aggregated/clear-cache")
        except httpx.HTTPError as e:
            logger.error(f"Failed to clear aggregated cache: {e}")
            return None
        return data["new_max_score"]


def print_summary(
    max_data: dict[str, Any] | None,
    warmed: list[tuple[int, str, int | None]],
    aggregated: int | None,
    aggregated_requested: bool,
) -> None:
    table = Table(title="Cache Refresh")
    table.add_column("Step", style="cyan")
    table.add_column("Result", justify="right")

    if max_data is None:
        table.add_row("Max complexity (top agencies)", "[red]failed[/red]")
    else:
        table.add_row("Max complexity (top agencies)", str(max_data["max_complexity_score"]))
        table.add_row("Cache expires", str(max_data["cache_expires"]))

    ok = sum(1 for _, _, score in warmed if score is not None)
    table.add_row("Agencies warmed", f"{ok}/{len(warmed)}")

    if aggregated_requested:
        table.add_row(
            "Max aggregated complexity",
            "[red]failed[/red]" if aggregated is None else str(aggregated),
        )

    console.print(table)

    if warmed:
        agency_table = Table(title="Warmed Agencies")
        agency_table.add_column("ID", justify="right")
        agency_table.add_column("Agency")
        agency_table.add_column("Complexity", justify="right")
        for agency_id, name, score in warmed:
            agency_table.add_row(str(agency_id), name, "[red]N/A[/red]" if score is None else str(score))
        console.print(agency_table)


# =============================================================================
# CLI
# =============================================================================


def main():
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Warm the eCFR analytics complexity caches")
    parser.add_argument("--base-url", default=settings.api_base_url, help="API base URL")
    parser.add_argument(
        "--aggregated",
        action="store_true",
        help="Also recompute the aggregated-group maximum",
    )
    parser.add_argument("--limit", type=int, default=WARM_AGENCY_LIMIT, help="Agencies to warm")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    with CacheRefresher(args.base_url) as refresher:
        max_data = refresher.refresh_max()
        warmed = refresher.warm_agencies(args.limit)
        aggregated = refresher.refresh_aggregated() if args.aggregated else None

    print_summary(max_data, warmed, aggregated, args.aggregated)

    if max_data is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
