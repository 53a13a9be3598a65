#!/usr/bin/env python3
"""
Load a JSON snapshot of agencies, titles and section text into Neo4j.

Snapshot shape:
    {
      "agencies": [{"id": 1, "name": "...", "slug": "...", "parentId": null}],
      "titles":   [{"id": 10, "code": "2-agriculture-department", "name": "...", "agencyId": 1}],
      "versions": [{"id": 100, "titleId": 10, "date": "2024-01-01",
                    "sections": [{"identifier": "2.1", "label": "...", "text": "..."}]}]
    }

Word counts and checksums are computed here, at load time.

Usage:
    python scripts/load_snapshot.py data/snapshot.json
    python scripts/load_snapshot.py data/snapshot.json --clear
"""
from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ecfr_analytics.analysis.metrics import build_section
from ecfr_analytics.config import Settings
from ecfr_analytics.exceptions import EcfrAnalyticsError
from ecfr_analytics.graph.neo4j_store import neo4j_store
from ecfr_analytics.models import Agency, Title

console = Console()


def load_snapshot(path: Path, clear: bool = False) -> dict[str, int]:
    snapshot = json.loads(path.read_text())
    settings = Settings.from_env()
    counts = {"agencies": 0, "titles": 0, "versions": 0, "sections": 0}

    with neo4j_store(uri=settings.neo4j_uri, user=settings.neo4j_user, password=settings.neo4j_password) as store:
        if clear:
            console.print("[yellow]Clearing existing graph...[/yellow]")
            store.clear_all(confirm=True)
        store.init_schema()

        agencies = {}
        # Parents first so PARENT_OF edges attach to named nodes
        for item in sorted(snapshot.get("agencies", []), key=lambda a: a.get("parentId") is not None):
            agency = Agency(
                id=item["id"],
                name=item["name"],
                slug=item.get("slug") or "",
                description=item.get("description"),
                parent_id=item.get("parentId"),
            )
            store.upsert_agency(agency)
            agencies[agency.id] = agency
            counts["agencies"] += 1

        for item in snapshot.get("titles", []):
            owner = agencies[item["agencyId"]]
            store.upsert_title(Title(id=item["id"], code=item["code"], name=item["name"], agency=owner.ref))
            counts["titles"] += 1

        for item in snapshot.get("versions", []):
            store.upsert_version(item["titleId"], item["id"], date.fromisoformat(item["date"]))
            sections = [
                build_section(s["identifier"], s.get("text") or "", s.get("label"))
                for s in item.get("sections", [])
            ]
            counts["sections"] += store.upsert_sections_batch(item["id"], sections)
            counts["versions"] += 1
            console.print(f"[dim]Version {item['id']} ({item['date']}): {len(sections)} sections[/dim]")

    return counts


# =============================================================================
# CLI
# =============================================================================


def main():
    parser = argparse.ArgumentParser(description="Load a regulation snapshot into Neo4j")
    parser.add_argument("snapshot", type=Path, help="Path to the snapshot JSON")
    parser.add_argument("--clear", action="store_true", help="Delete the existing graph first")
    args = parser.parse_args()

    try:
        counts = load_snapshot(args.snapshot, clear=args.clear)
    except (EcfrAnalyticsError, OSError, ValueError, KeyError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)

    table = Table(title="Loaded")
    table.add_column("Kind", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for kind, count in counts.items():
        table.add_row(kind, str(count))
    console.print(table)


if __name__ == "__main__":
    main()
