"""
Neo4j Graph Store - The regulation database layer.

This module provides:
1. Connection management to Neo4j
2. Schema initialization (constraints, indexes)
3. Upserts used by loaders and fixtures
4. The read queries the analysis layer depends on (see graph.store)

The graph schema:
- Nodes: Agency, Title, Version, Section
- Edges:
    (:Agency)-[:PARENT_OF]->(:Agency)
    (:Agency)-[:OWNS]->(:Title)
    (:Title)-[:HAS_VERSION]->(:Version)
    (:Version)-[:CONTAINS]->(:Section)

Dates are stored as ISO strings so that ordering and equality are plain
string operations.
"""
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import date
from typing import Any, Iterator

from neo4j import GraphDatabase, Driver, Session
from neo4j.exceptions import DriverError, Neo4jError, ServiceUnavailable

from ..exceptions import StoreUnavailableError
from ..models import Agency, AgencyRef, Section, SectionSample, Title

logger = logging.getLogger(__name__)

# Matches every section an agency owns, across titles and versions
_AGENCY_SECTIONS = (
    "(a:Agency {id: $agency_id})-[:OWNS]->(t:Title)"
    "-[:HAS_VERSION]->(v:Version)-[:CONTAINS]->(s:Section)"
)


class Neo4jStore:
    """
    Neo4j implementation of RegulationStore.

    Usage:
        store = Neo4jStore()
        store.connect()

        store.upsert_agency(Agency(id=1, name="Agriculture Department", slug="agriculture-department"))
        store.count_sections(1)

        store.close()
    """

    def __init__(
        self,
        uri: str | None = None,
        user: str | None = None,
        password: str | None = None,
    ):
        """Initialize with connection parameters (or use env vars)."""
        self.uri = uri or os.getenv("NEO4J_URI", "bolt://localhost:7687")
        self.user = user or os.getenv("NEO4J_USER", "neo4j")
        self.password = password or os.getenv("NEO4J_PASSWORD", "password")
        self._driver: Driver | None = None

    def connect(self) -> None:
        """Establish connection to Neo4j."""
        if self._driver is not None:
            return

        self._driver = GraphDatabase.driver(
            self.uri,
            auth=(self.user, self.password),
        )
        # Verify connectivity
        try:
            self._driver.verify_connectivity()
        except (ServiceUnavailable, DriverError) as e:
            self._driver.close()
            self._driver = None
            raise StoreUnavailableError(
                f"Could not connect to Neo4j at {self.uri}. "
                "Make sure Neo4j is running and credentials are correct."
            ) from e

    def close(self) -> None:
        """Close the connection."""
        if self._driver:
            self._driver.close()
            self._driver = None

    @property
    def driver(self) -> Driver:
        """Get the driver, ensuring connection."""
        if self._driver is None:
            self.connect()
        return self._driver  # type: ignore

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Get a session context manager; driver errors become StoreUnavailableError."""
        session = self.driver.session()
        try:
            yield session
        except (Neo4jError, DriverError) as e:
            raise StoreUnavailableError(f"Neo4j query failed: {e}") from e
        finally:
            session.close()

    def ping(self) -> None:
        """Run a trivial query."""
        with self.session() as session:
            session.run("RETURN 1").consume()

    # =========================================================================
    # Schema Management
    # =========================================================================

    def init_schema(self) -> None:
        """
        Initialize the graph schema with constraints and indexes.

        Call this once when setting up a new database.
        """
        with self.session() as session:
            # Node uniqueness constraints (also creates indexes)
            for label in ("Agency", "Title", "Version", "Section"):
                session.run(
                    f"CREATE CONSTRAINT {label.lower()}_id_unique "
                    f"IF NOT EXISTS FOR (n:{label}) REQUIRE n.id IS UNIQUE"
                )

            # Additional indexes for common queries
            indexes = [
                ("Agency", "slug"),
                ("Title", "code"),
                ("Version", "date"),
                ("Section", "identifier"),
            ]

            for label, prop in indexes:
                session.run(
                    f"CREATE INDEX {label.lower()}_{prop}_idx "
                    f"IF NOT EXISTS FOR (n:{label}) ON (n.{prop})"
                )

    def clear_all(self, confirm: bool = False) -> None:
        """
        Delete all nodes and relationships. Requires explicit confirmation.

        USE WITH CAUTION - this deletes everything!
        """
        if not confirm:
            raise ValueError("Must pass confirm=True to clear the database")

        with self.session() as session:
            session.run("MATCH (n) DETACH DELETE n")

    # =========================================================================
    # Upserts
    # =========================================================================

    def upsert_agency(self, agency: Agency) -> None:
        """Insert or update an agency and its link to its parent."""
        with self.session() as session:
            session.run(
                "MERGE (a:Agency {id: $id}) "
                "SET a.name = $name, a.slug = $slug, a.description = $description",
                id=agency.id,
                name=agency.name,
                slug=agency.slug,
                description=agency.description,
            )
            if agency.parent_id is not None:
                session.run(
                    "MERGE (p:Agency {id: $parent_id}) "
                    "WITH p MATCH (a:Agency {id: $id}) "
                    "MERGE (p)-[:PARENT_OF]->(a)",
                    parent_id=agency.parent_id,
                    id=agency.id,
                )

    def upsert_title(self, title: Title) -> None:
        """Insert or update a title and attach it to its agency."""
        with self.session() as session:
            session.run(
                "MATCH (a:Agency {id: $agency_id}) "
                "MERGE (t:Title {id: $id}) "
                "SET t.code = $code, t.name = $name "
                "MERGE (a)-[:OWNS]->(t)",
                agency_id=title.agency.id,
                id=title.id,
                code=title.code,
                name=title.name,
            )

    def upsert_version(self, title_id: int, version_id: int, version_date: date) -> None:
        """Insert or update a dated version of a title."""
        with self.session() as session:
            session.run(
                "MATCH (t:Title {id: $title_id}) "
                "MERGE (v:Version {id: $id}) "
                "SET v.date = $date "
                "MERGE (t)-[:HAS_VERSION]->(v)",
                title_id=title_id,
                id=version_id,
                date=version_date.isoformat(),
            )

    def upsert_sections_batch(
        self,
        version_id: int,
        sections: list[Section],
        batch_size: int = 1000,
    ) -> int:
        """
        Batch upsert the sections of one version.

        Section node ids are "<version_id>:<identifier>".
        Returns the number of sections upserted.
        """
        if not sections:
            return 0

        count = 0
        with self.session() as session:
            for i in range(0, len(sections), batch_size):
                batch = sections[i : i + batch_size]
                rows = [
                    {"id": f"{version_id}:{s.identifier}", "props": s.model_dump()}
                    for s in batch
                ]

                session.run(
                    "MATCH (v:Version {id: $version_id}) "
                    "UNWIND $batch AS item "
                    "MERGE (s:Section {id: item.id}) "
                    "SET s += item.props "
                    "MERGE (v)-[:CONTAINS]->(s)",
                    version_id=version_id,
                    batch=rows,
                )
                count += len(batch)

        return count

    # =========================================================================
    # Agencies
    # =========================================================================

    def get_agency(self, agency_id: int) -> Agency | None:
        """Get one agency with its parent and children."""
        with self.session() as session:
            result = session.run(
                """
                MATCH (a:Agency {id: $agency_id})
                OPTIONAL MATCH (p:Agency)-[:PARENT_OF]->(a)
                OPTIONAL MATCH (a)-[:PARENT_OF]->(c:Agency)
                WITH a, p, c ORDER BY c.name
                RETURN a, p, collect(c) AS children
                """,
                agency_id=agency_id,
            )
            record = result.single()
            if record is None:
                return None
            return self._to_agency(record["a"], record["p"], record["children"])

    def list_agencies(self, parents_only: bool = False) -> list[Agency]:
        """List agencies, top-level first, then by parent and name."""
        where = "WHERE (a)-[:PARENT_OF]->(:Agency)" if parents_only else ""
        with self.session() as session:
            result = session.run(
                f"""
                MATCH (a:Agency)
                {where}
                OPTIONAL MATCH (p:Agency)-[:PARENT_OF]->(a)
                OPTIONAL MATCH (a)-[:PARENT_OF]->(c:Agency)
                WITH a, p, c ORDER BY c.name
                WITH a, p, collect(c) AS children
                RETURN a, p, children
                ORDER BY CASE WHEN p IS NULL THEN 0 ELSE 1 END, p.id, a.name
                """
            )
            return [self._to_agency(r["a"], r["p"], r["children"]) for r in result]

    # =========================================================================
    # Sections
    # =========================================================================

    def count_sections(self, agency_id: int) -> int:
        with self.session() as session:
            result = session.run(
                f"MATCH {_AGENCY_SECTIONS} RETURN count(s) AS count",
                agency_id=agency_id,
            )
            record = result.single()
            return int(record["count"]) if record else 0

    def sample_sections(self, agency_id: int, limit: int) -> list[SectionSample]:
        """Newest versions first, then by identifier, so repeated samples agree."""
        if limit <= 0:
            return []
        with self.session() as session:
            result = session.run(
                f"""
                MATCH {_AGENCY_SECTIONS}
                RETURN s.identifier AS identifier, s.text AS text
                ORDER BY v.date DESC, s.identifier
                LIMIT $limit
                """,
                agency_id=agency_id,
                limit=limit,
            )
            return [
                SectionSample(identifier=r["identifier"] or "", text=r["text"] or "")
                for r in result
            ]

    def top_agencies_by_section_count(self, limit: int) -> list[tuple[int, int]]:
        with self.session() as session:
            result = session.run(
                """
                MATCH (a:Agency)-[:OWNS]->(:Title)-[:HAS_VERSION]->(:Version)-[:CONTAINS]->(s:Section)
                RETURN a.id AS agency_id, count(s) AS section_count
                ORDER BY section_count DESC, agency_id
                LIMIT $limit
                """,
                limit=limit,
            )
            return [(int(r["agency_id"]), int(r["section_count"])) for r in result]

    def latest_version_date(self, agency_id: int) -> date | None:
        with self.session() as session:
            result = session.run(
                """
                MATCH (:Agency {id: $agency_id})-[:OWNS]->(:Title)-[:HAS_VERSION]->(v:Version)
                WHERE (v)-[:CONTAINS]->(:Section)
                RETURN v.date AS date
                ORDER BY v.date DESC
                LIMIT 1
                """,
                agency_id=agency_id,
            )
            record = result.single()
            if record is None or record["date"] is None:
                return None
            return date.fromisoformat(str(record["date"]))

    def list_sections(self, agency_id: int, on_date: date) -> list[Section]:
        with self.session() as session:
            result = session.run(
                f"""
                MATCH {_AGENCY_SECTIONS}
                WHERE v.date = $date
                RETURN s
                ORDER BY s.identifier
                """,
                agency_id=agency_id,
                date=on_date.isoformat(),
            )
            return [self._to_section(dict(r["s"])) for r in result]

    # =========================================================================
    # Titles
    # =========================================================================

    def list_titles(self, agency_id: int | None = None) -> list[Title]:
        where = "WHERE a.id = $agency_id" if agency_id is not None else ""
        with self.session() as session:
            result = session.run(
                f"""
                MATCH (a:Agency)-[:OWNS]->(t:Title)
                {where}
                RETURN t, a
                ORDER BY t.code
                """,
                agency_id=agency_id,
            )
            return [
                Title(
                    id=r["t"]["id"],
                    code=r["t"]["code"],
                    name=r["t"]["name"],
                    agency=self._to_ref(r["a"]),
                )
                for r in result
            ]

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _to_ref(self, node: Any) -> AgencyRef:
        return AgencyRef(id=node["id"], name=node.get("name") or "", slug=node.get("slug") or "")

    def _to_agency(self, node: Any, parent: Any | None, children: list[Any]) -> Agency:
        """Convert an Agency node plus its neighbours into the model."""
        return Agency(
            id=node["id"],
            name=node.get("name") or "",
            slug=node.get("slug") or "",
            description=node.get("description"),
            parent_id=parent["id"] if parent is not None else None,
            parent=self._to_ref(parent) if parent is not None else None,
            children=[self._to_ref(c) for c in children],
        )

    def _to_section(self, props: dict[str, Any]) -> Section:
        return Section(
            identifier=props.get("identifier", ""),
            label=props.get("label"),
            text=props.get("text") or "",
            word_count=int(props.get("word_count") or 0),
            checksum=props.get("checksum") or "",
        )


# =============================================================================
# Context Manager Support
# =============================================================================


@contextmanager
def neo4j_store(**kwargs) -> Iterator[Neo4jStore]:
    """Context manager for Neo4jStore."""
    store = Neo4jStore(**kwargs)
    store.connect()
    try:
        yield store
    finally:
        store.close()
