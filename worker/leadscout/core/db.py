"""Database helpers for the worker."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

import psycopg2
from psycopg2 import pool

from leadscout.core.config import get_settings
from leadscout.models import Candidate, ExistingBusiness

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None

UPSERT_BATCH_SIZE = 25


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


_SELECT_EXISTING = """
SELECT name, address
FROM businesses
WHERE location_query = %(location)s;
"""


def fetch_existing_businesses(location: str) -> List[ExistingBusiness]:
    """Name/address pairs already stored for ``location``."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_SELECT_EXISTING, {"location": location})
            rows = cur.fetchall()
    existing = [ExistingBusiness(name=name, address=address) for name, address in rows if name]
    logger.info("Loaded %d existing businesses for %s", len(existing), location)
    return existing


def _prepare_params(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": row.get("name"),
        "address": row.get("address"),
        "phone": row.get("phone"),
        "rating": row.get("rating"),
        "review_count": row.get("review_count"),
        "category": row.get("category"),
        "google_maps_url": row.get("google_maps_url"),
        "has_website": bool(row.get("has_website")),
        "website_url": row.get("website_url"),
        "website_score": row.get("website_score"),
        "website_issues": row.get("website_issues"),
        "location_query": row.get("location_query"),
    }


_UPSERT_BUSINESS = """
INSERT INTO businesses (
    name,
    address,
    phone,
    rating,
    review_count,
    category,
    google_maps_url,
    has_website,
    website_url,
    website_score,
    website_issues,
    location_query,
    updated_at
) VALUES (
    %(name)s,
    %(address)s,
    %(phone)s,
    %(rating)s,
    %(review_count)s,
    %(category)s,
    %(google_maps_url)s,
    %(has_website)s,
    %(website_url)s,
    %(website_score)s,
    %(website_issues)s,
    %(location_query)s,
    NOW()
)
ON CONFLICT (name, address) DO UPDATE SET
    phone = EXCLUDED.phone,
    rating = EXCLUDED.rating,
    review_count = EXCLUDED.review_count,
    category = EXCLUDED.category,
    google_maps_url = EXCLUDED.google_maps_url,
    has_website = EXCLUDED.has_website,
    website_url = EXCLUDED.website_url,
    website_score = EXCLUDED.website_score,
    website_issues = EXCLUDED.website_issues,
    location_query = EXCLUDED.location_query,
    updated_at = NOW();
"""


def upsert_businesses(candidates: Iterable[Candidate], *, batch_size: int = UPSERT_BATCH_SIZE) -> int:
    """Persist candidates in batches; returns how many rows were stored.

    A failing batch is rolled back and logged, the remaining batches still run.
    """
    rows = [_prepare_params(candidate.as_row()) for candidate in candidates]
    stored = 0

    with get_connection() as conn:
        for start in range(0, len(rows), batch_size):
            batch = rows[start:start + batch_size]
            try:
                with conn.cursor() as cur:
                    for params in batch:
                        cur.execute(_UPSERT_BUSINESS, params)
                conn.commit()
            except psycopg2.Error as exc:
                conn.rollback()
                logger.error("Failed to upsert batch of %d businesses: %s", len(batch), exc)
                continue
            stored += len(batch)

    logger.debug("Upserted %d/%d businesses", stored, len(rows))
    return stored


_INSERT_SCRAPE_LOG = """
INSERT INTO scrape_logs (type, source, status, items_found, started_at)
VALUES (%(type)s, %(source)s, 'running', 0, NOW())
RETURNING id;
"""

_FINISH_SCRAPE_LOG = """
UPDATE scrape_logs SET
    status = %(status)s,
    items_found = %(items_found)s,
    error_message = %(error_message)s,
    completed_at = NOW()
WHERE id = %(id)s;
"""


def create_scrape_log(kind: str = "businesses", source: str = "Google Maps") -> Optional[str]:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_INSERT_SCRAPE_LOG, {"type": kind, "source": source})
            row = cur.fetchone()
        conn.commit()
    return str(row[0]) if row else None


def finish_scrape_log(
    log_id: Optional[str],
    *,
    status: str,
    items_found: int = 0,
    error_message: Optional[str] = None,
) -> None:
    if status not in {"completed", "failed"}:
        raise ValueError(f"unknown scrape log status: {status}")
    if not log_id:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(
                _FINISH_SCRAPE_LOG,
                {"id": log_id, "status": status, "items_found": items_found, "error_message": error_message},
            )
        conn.commit()
