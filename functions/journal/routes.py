"""
HTTP routes for the Journey Diary API: Cloudinary proxy and geo lookups.
"""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import partial
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from journal import memories as memory_utils
from journal.config import Settings, get_settings
from journal.db import DbClient
from journal.dependencies import get_db_client, get_geo_client, get_media_client
from journal.errors import ApiError, missing_cloudinary_config
from journal.geo import GeoClient, GeoError, parse_coordinate, validate_coords
from journal.media import MediaClient, MediaError, iter_resources
from journal.rate_limit import standard_rate_limit
from journal.schemas import (
    CloudinaryConfigResponse,
    CreateMemoryResponse,
    DeleteRequest,
    HealthResponse,
    ImagesResponse,
    LegacyDeleteRequest,
    MemoriesResponse,
)
from journal.session import SessionData, require_session
from shared.firebase_constants import MEMORIES_COLLECTION, collection_name

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(standard_rate_limit)])

# Upload options a client may pass through the ``transformation`` JSON field.
TRANSFORMATION_KEYS = ("width", "height", "crop", "quality")
MAX_PARALLEL_CLOUDINARY_CALLS = 8


def _timestamp() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _require_media(media: Optional[MediaClient]) -> MediaClient:
    if media is None:
        logger.error("Missing Cloudinary config")
        raise missing_cloudinary_config()
    return media


def _parse_json_field(raw: Optional[str], name: str) -> Optional[dict]:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError as e:
        logger.debug("%s parse error: %s", name, e)
        return None
    if not isinstance(value, dict):
        logger.debug("%s parse error: expected an object", name)
        return None
    return value


def _run_parallel(fn, items: list) -> list:
    if not items:
        return []
    with ThreadPoolExecutor(
        max_workers=min(len(items), MAX_PARALLEL_CLOUDINARY_CALLS)
    ) as pool:
        return list(pool.map(fn, items))


# ---------------------------------------------------------------------------
# Cloudinary
# ---------------------------------------------------------------------------


@router.get("/cloudinary/config", response_model=CloudinaryConfigResponse)
def cloudinary_config(settings: Settings = Depends(get_settings)):
    return CloudinaryConfigResponse(
        cloudName=settings.cloudinary_cloud_name or "demo",
        isConfigured=settings.cloudinary_configured,
        timestamp=_timestamp(),
    )


@router.get("/cloudinary/health", response_model=HealthResponse)
@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(timestamp=_timestamp(), message="API is healthy")


@router.get("/cloudinary/debug-config")
def cloudinary_debug_config(settings: Settings = Depends(get_settings)):
    """Reports which Cloudinary credentials are present, never their values."""
    present = {
        "CloudName": bool(settings.cloudinary_cloud_name),
        "ApiKey": bool(settings.cloudinary_api_key),
        "ApiSecret": bool(settings.cloudinary_api_secret),
    }
    report: dict[str, Any] = {f"has{name}": value for name, value in present.items()}
    for name, value in present.items():
        report[name[0].lower() + name[1:]] = "SET" if value else "MISSING"
    report["allConfigured"] = settings.cloudinary_configured
    report["timestamp"] = _timestamp()
    report["environment"] = settings.environment
    return report


@router.get("/cloudinary/images", response_model=ImagesResponse)
def list_images(
    folder: Optional[str] = None,
    tags: Optional[str] = None,
    max_results: int = Query(20, ge=1, le=500),
    next_cursor: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    media: Optional[MediaClient] = Depends(get_media_client),
):
    media = _require_media(media)
    expression = "resource_type:image"
    if folder:
        expression += f" AND folder:{folder}"
    if tags:
        tag_terms = " AND ".join(
            f"tags:{tag.strip()}" for tag in tags.split(",") if tag.strip()
        )
        if tag_terms:
            expression += f" AND ({tag_terms})"
    if sort_order not in ("asc", "desc"):
        sort_order = "desc"

    logger.info("Search expression: %s", expression)
    try:
        result = media.search(
            expression,
            sort_by=sort_by,
            sort_order=sort_order,
            max_results=max_results,
            next_cursor=next_cursor,
        )
    except MediaError as e:
        logger.error("Image search failed: %s", e)
        raise ApiError(500, "Failed to fetch images", str(e))
    return ImagesResponse(
        resources=result.get("resources") or [],
        next_cursor=result.get("next_cursor"),
        total_count=result.get("total_count") or 0,
    )


@router.get(
    "/cloudinary/memories",
    response_model=MemoriesResponse,
    response_model_exclude_unset=True,
)
def list_memories(
    userId: Optional[str] = None,
    media: Optional[MediaClient] = Depends(get_media_client),
    db: Optional[DbClient] = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    """
    Rebuilds the caller's memories from image context, then overlays the
    untruncated fields stored in Firestore when it is available.
    """
    if media is None:
        return {"memories": []}

    prefix = memory_utils.user_memories_prefix(
        userId, settings.cloudinary_folder_prefix
    )
    try:
        resources = list(iter_resources(media, prefix))
    except MediaError as e:
        logger.error("Failed to list images under %s: %s", prefix, e)
        raise ApiError(500, "Failed to fetch memories", str(e), memories=[])

    memories = memory_utils.group_memories(resources, user_id=userId)

    if userId and db is not None:
        try:
            records = db.query(
                collection_name(
                    settings.firestore_collection_prefix, MEMORIES_COLLECTION
                ),
                [("userId", "==", userId)],
            )
            merged = memory_utils.merge_firestore_metadata(
                memories, {record.id: record.data for record in records}
            )
            logger.info("Merged %d memories from Firestore", merged)
        except Exception:
            logger.exception("Firestore fetch error; using Cloudinary context only")

    return {"memories": memories, "timestamp": _timestamp()}


@router.post("/cloudinary/memory", response_model=CreateMemoryResponse)
def create_memory(
    title: Optional[str] = Form(None),
    text: Optional[str] = Form(None),
    date: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    userId: Optional[str] = Form(None),
    images: Optional[list[UploadFile]] = File(None),
    media: Optional[MediaClient] = Depends(get_media_client),
    settings: Settings = Depends(get_settings),
):
    media = _require_media(media)
    images = [image for image in images or [] if image.filename]
    if not title or not text or not date or not images:
        logger.warning(
            "Missing fields: title=%s text=%s date=%s images=%d",
            bool(title),
            bool(text),
            bool(date),
            len(images),
        )
        raise ApiError(400, "Missing required fields: title, text, date, or images")

    memory_date = memory_utils.parse_date(date)
    if memory_date is None:
        raise ApiError(400, "Bad Request", f'Invalid date "{date}"')

    folder = memory_utils.memory_folder(
        memory_date, userId, settings.cloudinary_folder_prefix
    )
    created_ms = int(time.time() * 1000)
    memory_id = f"memory-{created_ms}"
    context = {
        "title": title,
        "location": location or "",
        "memory_date": date,
        "memory_text": text[: memory_utils.MAX_CONTEXT_TEXT_LENGTH],
        "memory_id": memory_id,
        "userId": userId or "",
    }

    def upload(indexed: tuple[int, UploadFile]) -> dict:
        idx, image = indexed
        return media.upload(
            image.file,
            folder=folder,
            tags=memory_utils.MEMORY_TAGS,
            public_id=f"memory-{created_ms}-{idx}",
            context=context,
        )

    try:
        uploaded = _run_parallel(upload, list(enumerate(images)))
    except MediaError as e:
        logger.error("Memory save error: %s", e)
        raise ApiError(500, "Failed to upload images", str(e))

    memory = {
        "id": memory_id,
        "title": title,
        "location": location or None,
        "text": text,
        "date": date,
        "images": [
            memory_utils.image_summary(
                result, memory_utils.parse_context(result.get("context"))
            )
            for result in uploaded
        ],
        "created_at": _timestamp(),
        "tags": list(memory_utils.MEMORY_TAGS),
        "folder": folder,
    }
    logger.info("Saved memory %s with %d images", memory_id, len(uploaded))
    return CreateMemoryResponse(
        success=True,
        memory=memory,
        message="Memory saved successfully!",
        timestamp=_timestamp(),
    )


@router.post("/cloudinary/upload")
def upload_image(
    file: Optional[UploadFile] = File(None),
    folder: str = Form("love-journal"),
    tags: str = Form("memory"),
    public_id: Optional[str] = Form(None),
    transformation: Optional[str] = Form(None),
    context: Optional[str] = Form(None),
    media: Optional[MediaClient] = Depends(get_media_client),
    settings: Settings = Depends(get_settings),
):
    media = _require_media(media)
    if file is None or not file.filename:
        logger.error("No file in request")
        raise ApiError(400, "No file provided")

    final_folder = memory_utils.with_prefix(
        folder or "love-journal", settings.cloudinary_folder_prefix
    )
    transform = _parse_json_field(transformation, "Transformation")
    options = {
        key: transform[key]
        for key in TRANSFORMATION_KEYS
        if transform and transform.get(key)
    }

    logger.info("Uploading %s to folder %s", file.filename, final_folder)
    try:
        result = media.upload(
            file.file,
            folder=final_folder,
            tags=[tag.strip() for tag in (tags or "memory").split(",")],
            public_id=public_id or None,
            context=_parse_json_field(context, "Context"),
            transformation=options or None,
        )
    except MediaError as e:
        logger.error("Upload error: %s", e)
        raise ApiError(500, "Failed to upload image", str(e))

    logger.info("Upload successful: %s", result.get("public_id"))
    return {
        "public_id": result.get("public_id"),
        "secure_url": result.get("secure_url"),
        "width": result.get("width"),
        "height": result.get("height"),
        "format": result.get("format"),
        "created_at": result.get("created_at"),
        "tags": result.get("tags") or [],
        "folder": result.get("folder"),
        "timestamp": _timestamp(),
    }


@router.api_route("/cloudinary/delete", methods=["POST", "DELETE"])
def delete_images(
    payload: DeleteRequest,
    media: Optional[MediaClient] = Depends(get_media_client),
):
    media = _require_media(media)
    ids = payload.ids()
    if not ids:
        raise ApiError(400, "public_id or publicIds array is required")

    def destroy(public_id: str) -> dict:
        try:
            return media.destroy(public_id)
        except MediaError as e:
            logger.error("Failed to delete %s: %s", public_id, e)
            return {"result": "error", "public_id": public_id, "error": str(e)}

    logger.info("Deleting %d images from Cloudinary", len(ids))
    results = _run_parallel(destroy, ids)
    deleted = sum(1 for result in results if result.get("result") == "ok")
    failed = len(results) - deleted
    logger.info("Deleted %d/%d images", deleted, len(ids))
    if failed:
        logger.warning(
            "Failed deletions: %s",
            [result for result in results if result.get("result") != "ok"],
        )

    if payload.public_id and not payload.publicIds:
        return {"result": results[0].get("result"), "timestamp": _timestamp()}
    return {
        "success": True,
        "deleted": deleted,
        "failed": failed,
        "results": results,
        "timestamp": _timestamp(),
    }


@router.post("/cloudinary-delete")
def legacy_delete_image(
    payload: LegacyDeleteRequest,
    media: Optional[MediaClient] = Depends(get_media_client),
):
    media = _require_media(media)
    if not payload.publicId:
        raise ApiError(400, "publicId is required")

    logger.info("Deleting image from Cloudinary: %s", payload.publicId)
    try:
        result = media.destroy(payload.publicId)
    except MediaError as e:
        logger.error("Error deleting from Cloudinary: %s", e)
        raise ApiError(500, str(e) or "Internal server error", success=False)

    outcome = result.get("result")
    if outcome not in ("ok", "not found"):
        raise ApiError(500, "Failed to delete image", success=False, result=result)
    return {
        "success": True,
        "result": outcome,
        "message": "Image already deleted"
        if outcome == "not found"
        else "Image deleted successfully",
    }


@router.get("/cloudinary/debug-memories")
def debug_memories(
    session: SessionData = Depends(require_session),
    media: Optional[MediaClient] = Depends(get_media_client),
    settings: Settings = Depends(get_settings),
):
    """Lists legacy-folder images with the context fields grouping relies on."""
    media = _require_media(media)
    prefix = memory_utils.user_memories_prefix(None, settings.cloudinary_folder_prefix)
    try:
        resources = list(iter_resources(media, prefix))
    except MediaError as e:
        logger.error("Debug listing failed: %s", e)
        raise ApiError(500, str(e))

    analysis = []
    for idx, resource in enumerate(resources):
        raw = resource.get("context")
        flat = raw if isinstance(raw, dict) else {}
        custom = flat.get("custom") if isinstance(flat.get("custom"), dict) else {}
        parsed = memory_utils.parse_context(raw)
        analysis.append(
            {
                "index": idx,
                "public_id": resource.get("public_id"),
                "created_at": resource.get("created_at"),
                "folder": resource.get("folder"),
                "memory_id": parsed.get("memory_id") or "MISSING",
                "userId": parsed.get("userId") or "MISSING",
                "title": parsed.get("title") or "MISSING",
                "context_keys": list(flat.keys()),
                "custom_context_keys": list(custom.keys()),
            }
        )
    missing = [item for item in analysis if item["memory_id"] == "MISSING"]
    logger.info(
        "Debug memories for %s: %d images, %d without memory_id",
        session.user_id,
        len(analysis),
        len(missing),
    )
    return {
        "total_fetched": len(resources),
        "analysis": analysis,
        "summary": {
            "total": len(analysis),
            "with_memory_id": len(analysis) - len(missing),
            "without_memory_id": len(missing),
            "missing_images": missing,
        },
    }


# ---------------------------------------------------------------------------
# Geocoding / routing
# ---------------------------------------------------------------------------


def _coordinates(lat: Optional[str], lon: Optional[str], message: str):
    if not lat or not lon:
        raise ApiError(400, message)
    try:
        return parse_coordinate(lat, "lat", 90), parse_coordinate(lon, "lon", 180)
    except ValueError as e:
        raise ApiError(400, "Bad Request", str(e))


def _route_coords(coords: Optional[str], message: str) -> str:
    if not coords:
        raise ApiError(400, message)
    try:
        return validate_coords(coords)
    except ValueError as e:
        raise ApiError(400, "Bad Request", str(e))


@router.get("/geo")
def geo(
    action: Optional[str] = None,
    q: Optional[str] = None,
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    coords: Optional[str] = None,
    client: GeoClient = Depends(get_geo_client),
):
    """Single entry point for search, reverse and route lookups."""
    if action == "search":
        if not q:
            raise ApiError(400, 'Query parameter "q" is required')
        call = partial(client.search, q)
    elif action == "reverse":
        latitude, longitude = _coordinates(
            lat, lon, 'Both "lat" and "lon" parameters are required'
        )
        call = partial(client.reverse, latitude, longitude)
    elif action == "route":
        checked = _route_coords(coords, 'Parameter "coords" is required')
        call = partial(client.route, checked)
    else:
        raise ApiError(400, "Invalid action. Use: search, reverse, or route")

    try:
        return call()
    except GeoError as e:
        logger.error("Geocoding API error: %s", e)
        raise ApiError(500, "Internal server error", str(e))


@router.get("/nominatim/search")
def nominatim_search(
    q: Optional[str] = None, client: GeoClient = Depends(get_geo_client)
):
    if not q:
        raise ApiError(400, 'Query parameter "q" is required')
    try:
        return client.search(q)
    except GeoError as e:
        logger.error("Nominatim search error: %s", e)
        raise ApiError(500, "Failed to fetch location data", str(e))


@router.get("/nominatim/reverse")
def nominatim_reverse(
    lat: Optional[str] = None,
    lon: Optional[str] = None,
    client: GeoClient = Depends(get_geo_client),
):
    latitude, longitude = _coordinates(
        lat, lon, 'Query parameters "lat" and "lon" are required'
    )
    try:
        return client.reverse(latitude, longitude)
    except GeoError as e:
        logger.error("Nominatim reverse geocoding error: %s", e)
        raise ApiError(500, "Failed to fetch location data", str(e))


@router.get("/routing/osrm")
def osrm_route(
    coords: Optional[str] = None, client: GeoClient = Depends(get_geo_client)
):
    checked = _route_coords(coords, "Missing coords parameter")
    try:
        return client.route(checked)
    except GeoError as e:
        logger.error("OSRM routing error: %s", e)
        raise ApiError(500, "Failed to fetch route", str(e))
