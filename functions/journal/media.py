"""
Media storage abstraction for Cloudinary and in-memory testing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, BinaryIO, Iterator, Optional, Protocol, Union
from uuid import uuid4

import cloudinary
import cloudinary.api
import cloudinary.uploader
from cloudinary import exceptions as cloudinary_exceptions

logger = logging.getLogger(__name__)

UploadSource = Union[str, bytes, BinaryIO]

# HTTP status implied by each Cloudinary SDK error class.
_CLOUDINARY_ERROR_STATUS = {
    cloudinary_exceptions.BadRequest: 400,
    cloudinary_exceptions.AuthorizationRequired: 401,
    cloudinary_exceptions.NotAllowed: 403,
    cloudinary_exceptions.NotFound: 404,
    cloudinary_exceptions.AlreadyExists: 409,
    cloudinary_exceptions.RateLimited: 420,
    cloudinary_exceptions.GeneralError: 500,
}


class MediaError(Exception):
    """Raised when the media backend rejects or fails a call."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MediaClient(Protocol):
    """Defines the operations the API and scripts need from image storage."""

    def upload(
        self,
        file: UploadSource,
        *,
        folder: str,
        tags: list[str],
        public_id: Optional[str] = None,
        context: Optional[dict] = None,
        transformation: Optional[dict] = None,
    ) -> dict:
        ...

    def destroy(self, public_id: str) -> dict:
        ...

    def search(
        self,
        expression: str,
        *,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        max_results: int = 20,
        next_cursor: Optional[str] = None,
    ) -> dict:
        ...

    def list_resources(
        self,
        prefix: str,
        *,
        next_cursor: Optional[str] = None,
        max_results: int = 100,
    ) -> dict:
        ...

    def rename(self, from_public_id: str, to_public_id: str) -> dict:
        ...

    def add_context(self, context: dict, public_ids: list[str]) -> dict:
        ...


def iter_resources(
    media: MediaClient, prefix: str, *, page_size: int = 100
) -> Iterator[dict]:
    """Yield every image under ``prefix``, following ``next_cursor`` pages."""
    next_cursor: Optional[str] = None
    page = 0
    while True:
        response = media.list_resources(
            prefix, next_cursor=next_cursor, max_results=page_size
        )
        resources = response.get("resources") or []
        page += 1
        logger.debug("Fetched page %d (%d images) for %s", page, len(resources), prefix)
        yield from resources
        next_cursor = response.get("next_cursor")
        if not next_cursor:
            return


def _matches_expression(resource: dict, expression: str) -> bool:
    """Evaluate the subset of search syntax the API builds (AND-ed terms)."""
    terms = [
        term.strip()
        for term in expression.replace("(", " ").replace(")", " ").split(" AND ")
    ]
    for term in terms:
        if not term or ":" not in term:
            continue
        key, value = term.split(":", 1)
        if key == "resource_type":
            if resource.get("resource_type", "image") != value:
                return False
        elif key == "folder":
            folder = resource.get("folder") or ""
            if value.endswith("/*"):
                base = value[:-2]
                if folder != base and not folder.startswith(base + "/"):
                    return False
            elif folder != value:
                return False
        elif key == "tags":
            if value not in (resource.get("tags") or []):
                return False
    return True


@dataclass
class InMemoryMediaClient:
    """Test double for Cloudinary interactions."""

    base_url: str = "https://res.example.test/image/upload"
    resources: dict[str, dict] = field(default_factory=dict)
    failing_ids: set[str] = field(default_factory=set)
    page_size_override: Optional[int] = None

    def add_resource(self, public_id: str, **fields: Any) -> dict:
        folder = public_id.rsplit("/", 1)[0] if "/" in public_id else ""
        resource = {
            "public_id": public_id,
            "secure_url": f"{self.base_url}/{public_id}.jpg",
            "resource_type": "image",
            "width": 800,
            "height": 600,
            "format": "jpg",
            "created_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "tags": [],
            "folder": folder,
        }
        resource.update(fields)
        self.resources[public_id] = resource
        return resource

    def upload(
        self,
        file: UploadSource,
        *,
        folder: str,
        tags: list[str],
        public_id: Optional[str] = None,
        context: Optional[dict] = None,
        transformation: Optional[dict] = None,
    ) -> dict:
        name = public_id or uuid4().hex
        full_id = f"{folder}/{name}" if folder else name
        if full_id in self.failing_ids:
            raise MediaError(f"Upload failed for {full_id}", status=500)
        fields: dict[str, Any] = {"tags": list(tags)}
        if context:
            fields["context"] = {"custom": {k: str(v) for k, v in context.items()}}
        for key in ("width", "height"):
            if transformation and transformation.get(key):
                fields[key] = transformation[key]
        return dict(self.add_resource(full_id, **fields))

    def destroy(self, public_id: str) -> dict:
        if public_id in self.failing_ids:
            raise MediaError(f"Delete failed for {public_id}", status=500)
        if self.resources.pop(public_id, None) is None:
            return {"result": "not found"}
        return {"result": "ok"}

    def search(
        self,
        expression: str,
        *,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        max_results: int = 20,
        next_cursor: Optional[str] = None,
    ) -> dict:
        matches = [
            r for r in self.resources.values() if _matches_expression(r, expression)
        ]
        matches.sort(
            key=lambda r: str(r.get(sort_by) or ""), reverse=sort_order == "desc"
        )
        start = int(next_cursor) if next_cursor else 0
        page = matches[start : start + max_results]
        end = start + len(page)
        return {
            "resources": page,
            "total_count": len(matches),
            "next_cursor": str(end) if end < len(matches) else None,
        }

    def list_resources(
        self,
        prefix: str,
        *,
        next_cursor: Optional[str] = None,
        max_results: int = 100,
    ) -> dict:
        page_size = self.page_size_override or max_results
        matches = sorted(
            (r for pid, r in self.resources.items() if pid.startswith(prefix)),
            key=lambda r: r["public_id"],
        )
        start = int(next_cursor) if next_cursor else 0
        page = matches[start : start + page_size]
        end = start + len(page)
        response: dict[str, Any] = {"resources": page}
        if end < len(matches):
            response["next_cursor"] = str(end)
        return response

    def rename(self, from_public_id: str, to_public_id: str) -> dict:
        resource = self.resources.get(from_public_id)
        if resource is None:
            raise MediaError(f"Resource not found - {from_public_id}", status=404)
        if to_public_id in self.resources:
            raise MediaError(f"Resource already exists - {to_public_id}", status=409)
        del self.resources[from_public_id]
        resource["public_id"] = to_public_id
        resource["folder"] = to_public_id.rsplit("/", 1)[0] if "/" in to_public_id else ""
        self.resources[to_public_id] = resource
        return dict(resource)

    def add_context(self, context: dict, public_ids: list[str]) -> dict:
        updated = []
        for public_id in public_ids:
            resource = self.resources.get(public_id)
            if resource is None:
                continue
            custom = dict((resource.get("context") or {}).get("custom") or {})
            custom.update({k: str(v) for k, v in context.items()})
            resource["context"] = {"custom": custom}
            updated.append(public_id)
        return {"public_ids": updated}


@dataclass
class CloudinaryMediaClient:
    """
    Cloudinary-backed storage client using the official SDK.
    """

    cloud_name: str
    api_key: str
    api_secret: str

    def __post_init__(self):
        cloudinary.config(
            cloud_name=self.cloud_name,
            api_key=self.api_key,
            api_secret=self.api_secret,
            secure=True,
        )

    def _call(self, fn, *args, **kwargs) -> dict:
        try:
            return fn(*args, **kwargs)
        except cloudinary_exceptions.Error as e:
            raise MediaError(str(e), status=_CLOUDINARY_ERROR_STATUS.get(type(e))) from e

    def upload(
        self,
        file: UploadSource,
        *,
        folder: str,
        tags: list[str],
        public_id: Optional[str] = None,
        context: Optional[dict] = None,
        transformation: Optional[dict] = None,
    ) -> dict:
        options: dict[str, Any] = {
            "resource_type": "auto",
            "quality": "auto",
            "fetch_format": "auto",
            "folder": folder,
            "tags": list(tags),
        }
        if public_id:
            options["public_id"] = public_id
        if context:
            options["context"] = context
        if transformation:
            options.update(transformation)
        return self._call(cloudinary.uploader.upload, file, **options)

    def destroy(self, public_id: str) -> dict:
        # Invalidate so the CDN stops serving the deleted asset.
        return self._call(cloudinary.uploader.destroy, public_id, invalidate=True)

    def search(
        self,
        expression: str,
        *,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        max_results: int = 20,
        next_cursor: Optional[str] = None,
    ) -> dict:
        query = (
            cloudinary.Search()
            .expression(expression)
            .sort_by(sort_by, sort_order)
            .max_results(max_results)
            .with_field("tags")
            .with_field("context")
            .with_field("metadata")
        )
        if next_cursor:
            query = query.next_cursor(next_cursor)
        return self._call(query.execute)

    def list_resources(
        self,
        prefix: str,
        *,
        next_cursor: Optional[str] = None,
        max_results: int = 100,
    ) -> dict:
        params: dict[str, Any] = {
            "type": "upload",
            "resource_type": "image",
            "prefix": prefix,
            "context": True,
            "tags": True,
            "max_results": max_results,
        }
        if next_cursor:
            params["next_cursor"] = next_cursor
        return self._call(cloudinary.api.resources, **params)

    def rename(self, from_public_id: str, to_public_id: str) -> dict:
        return self._call(
            cloudinary.uploader.rename,
            from_public_id,
            to_public_id,
            overwrite=False,
            invalidate=True,
        )

    def add_context(self, context: dict, public_ids: list[str]) -> dict:
        return self._call(cloudinary.uploader.add_context, context, public_ids)
