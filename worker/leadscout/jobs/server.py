"""HTTP entrypoint that runs maps scrapes and streams their progress."""

from __future__ import annotations

import json
import logging
import os
import queue
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterator, List, Optional, Tuple

import psycopg2
from flask import Flask, Response, jsonify, request, stream_with_context

from leadscout.core import db
from leadscout.core.config import get_settings
from leadscout.core.website_analyzer import analyze_website
from leadscout.jobs import scrape_businesses
from leadscout.models import ExistingBusiness, ProgressEvent, ScrapeConfig

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
_executor = ThreadPoolExecutor(max_workers=4)
_END_OF_STREAM = object()

# ---------- Helpers ----------


def format_sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def _parse_scrape_payload(payload: Dict[str, Any]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """Validate a scrape request body; returns (params, error)."""
    location = str(payload.get("location") or "").strip()
    if not location:
        return None, "location is required"

    min_rating = None
    if payload.get("minRating") is not None:
        try:
            min_rating = float(payload["minRating"])
        except (TypeError, ValueError):
            return None, "minRating must be numeric"

    radius_km = None
    if payload.get("radius") is not None:
        try:
            radius_km = float(payload["radius"])
        except (TypeError, ValueError):
            return None, "radius must be numeric"

    max_results = get_settings().default_max_results
    if payload.get("maxResults") is not None:
        try:
            max_results = int(payload["maxResults"])
        except (TypeError, ValueError):
            return None, "maxResults must be numeric"
        if max_results <= 0:
            return None, "maxResults must be positive"

    categories = payload.get("categories") or []
    if not isinstance(categories, list) or not all(isinstance(c, str) for c in categories):
        return None, "categories must be a list of strings"

    return (
        {
            "location": location,
            "min_rating": min_rating,
            "radius_km": radius_km,
            "max_results": max_results,
            "categories": categories,
        },
        None,
    )


def _load_existing(location: str) -> List[ExistingBusiness]:
    try:
        return db.fetch_existing_businesses(location)
    except (psycopg2.Error, RuntimeError) as exc:
        logger.warning("Could not load existing businesses for %s: %s", location, exc)
        return []


def _open_scrape_log() -> Optional[str]:
    try:
        return db.create_scrape_log("businesses", "Google Maps")
    except (psycopg2.Error, RuntimeError) as exc:
        logger.warning("Could not create scrape log: %s", exc)
        return None


def _close_scrape_log(log_id: Optional[str], **kwargs: Any) -> None:
    try:
        db.finish_scrape_log(log_id, **kwargs)
    except (psycopg2.Error, RuntimeError) as exc:
        logger.warning("Could not update scrape log %s: %s", log_id, exc)


def _build_config(params: Dict[str, Any]) -> ScrapeConfig:
    return scrape_businesses.build_config(
        existing=_load_existing(params["location"]),
        **params,
    )


def _run_scrape_job(config: ScrapeConfig, events: "queue.Queue") -> None:
    """Run one scrape on a worker thread, pushing SSE events into ``events``."""

    def send(event: str, data: Dict[str, Any]) -> None:
        events.put((event, data))

    def on_progress(update: ProgressEvent) -> None:
        send("progress", update.to_dict())

    try:
        log_id = _open_scrape_log()
        send("status", {"message": "Initialising scraper...", "progress": 0})

        result = scrape_businesses.run_blocking(config, on_progress)
        if result.error:
            send("error", {"message": result.error})
            _close_scrape_log(log_id, status="failed", error_message=result.error)
            return

        send("status", {"message": "Saving results...", "progress": 95})
        stored = db.upsert_businesses(result.candidates)
        _close_scrape_log(log_id, status="completed", items_found=stored)

        send(
            "complete",
            {
                "success": True,
                "message": f"{stored} potential clients found in {config.location}",
                "items_found": stored,
                "total_scraped": result.total_scraped,
            },
        )
    except Exception as exc:  # noqa: BLE001
        logger.exception("Scrape stream failed: %s", exc)
        send("error", {"message": str(exc) or "Unknown error"})
    finally:
        events.put(_END_OF_STREAM)


def _drain(events: "queue.Queue") -> Iterator[str]:
    while True:
        item = events.get()
        if item is _END_OF_STREAM:
            return
        event, data = item
        yield format_sse(event, data)


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only, never the database."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "headless": settings.headless,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/scrape/businesses/stream")
def stream_business_scrape() -> Any:
    """
    Run a maps scrape and stream its progress as Server-Sent Events.
    Required JSON fields: location
    Optional: categories (list), minRating (float), radius (float), maxResults (int)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    params, error = _parse_scrape_payload(payload)
    if error:
        return jsonify({"error": error}), 400

    config = _build_config(params)
    events: "queue.Queue" = queue.Queue()
    logger.info("Queueing streamed maps scrape: %s", params)
    _executor.submit(_run_scrape_job, config, events)

    return Response(
        stream_with_context(_drain(events)),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.post("/scrape/businesses")
def business_scrape() -> Any:
    """Blocking variant of the streamed scrape; returns the ranked businesses."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    params, error = _parse_scrape_payload(payload)
    if error:
        return jsonify({"error": error}), 400

    config = _build_config(params)
    result = scrape_businesses.run_blocking(config)
    businesses = [candidate.as_row() for candidate in result.candidates]
    if result.error:
        return jsonify({"error": result.error, "data": {"businesses": businesses}}), 502

    try:
        stored = db.upsert_businesses(result.candidates)
    except (psycopg2.Error, RuntimeError) as exc:
        logger.exception("Failed to persist businesses: %s", exc)
        return jsonify({"error": "failed to save businesses", "data": {"businesses": businesses}}), 500

    return (
        jsonify(
            {
                "data": {
                    "businesses": businesses,
                    "items_found": stored,
                    "total_scraped": result.total_scraped,
                }
            }
        ),
        200,
    )


@app.post("/analyze")
def analyze() -> Any:
    """Score a single website's technical quality."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    website = payload.get("website")
    if not website or not isinstance(website, str):
        return jsonify({"error": "website is required"}), 400

    analysis = analyze_website(website, timeout=get_settings().analyzer_request_timeout_s)
    if analysis is None:
        return jsonify({"error": "website could not be analysed"}), 422

    return (
        jsonify({"data": {"url": analysis.url, "score": analysis.score, "issues": analysis.issues}}),
        200,
    )


def main() -> None:
    """Bind on $PORT when the platform injects one, otherwise WORKER_PORT."""
    env_port = os.getenv("PORT")
    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port, threaded=True)


if __name__ == "__main__":
    main()
