"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

import firebase_admin
from firebase_admin import credentials, firestore

from journal.config import Settings, get_settings
from journal.db import DbClient, FirestoreDbClient, InMemoryDbClient
from journal.geo import GeoClient
from journal.identity import AuthClient, FirebaseAuthClient, InMemoryAuthClient
from journal.media import CloudinaryMediaClient, InMemoryMediaClient, MediaClient

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "journey-diary-api"

_media_client: MediaClient | None = None
_db_client: DbClient | None = None
_geo_client: GeoClient | None = None
_auth_client: AuthClient | None = None
_firebase_app: firebase_admin.App | None = None


def _get_firebase_app(settings: Settings) -> firebase_admin.App:
    """
    Initialise a named Firebase Admin app from the service-account settings.
    """
    global _firebase_app
    if _firebase_app:
        return _firebase_app
    cert = credentials.Certificate(
        {
            "type": "service_account",
            "project_id": settings.firebase_project_id,
            "client_email": settings.firebase_client_email,
            "private_key": settings.firebase_private_key_pem,
            "token_uri": "https://oauth2.googleapis.com/token",
        }
    )
    _firebase_app = firebase_admin.initialize_app(
        cert, {"projectId": settings.firebase_project_id}, name=FIREBASE_APP_NAME
    )
    logger.info("Initialized Firebase Admin for %s", settings.firebase_project_id)
    return _firebase_app


def get_media_client() -> MediaClient | None:
    """
    Return the singleton media client, or None when Cloudinary is not configured.
    """
    global _media_client
    if _media_client:
        return _media_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _media_client = InMemoryMediaClient()
    elif settings.cloudinary_configured:
        _media_client = CloudinaryMediaClient(
            cloud_name=settings.cloudinary_cloud_name or "",
            api_key=settings.cloudinary_api_key or "",
            api_secret=settings.cloudinary_api_secret or "",
        )
    return _media_client


def get_db_client() -> DbClient | None:
    """
    Return a singleton document store, or None without Firebase credentials.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _db_client = InMemoryDbClient()
    elif settings.firebase_configured:
        _db_client = FirestoreDbClient(firestore.client(_get_firebase_app(settings)))
    return _db_client


def get_geo_client() -> GeoClient:
    global _geo_client
    if _geo_client:
        return _geo_client

    settings = get_settings()
    _geo_client = GeoClient(
        nominatim_base_url=settings.nominatim_base_url,
        osrm_base_url=settings.osrm_base_url,
        user_agent=settings.geo_user_agent,
        timeout=settings.request_timeout,
    )
    return _geo_client


def get_auth_client() -> AuthClient | None:
    global _auth_client
    if _auth_client:
        return _auth_client

    settings = get_settings()
    if settings.use_in_memory_backends:
        _auth_client = InMemoryAuthClient()
    elif settings.firebase_configured:
        _auth_client = FirebaseAuthClient(_get_firebase_app(settings))
    return _auth_client
