# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Cloud functions for the Journey Diary backend - image deletion + account
# and cron maintenance jobs.
#
# This file containing Python cloud functions must be named main.py.
# See https://cloud.google.com/run/docs/write-functions#python for more info.

# Standard library imports
import os
from dataclasses import asdict

# Third-party library imports
from firebase_admin import initialize_app, firestore
from firebase_functions import https_fn, logger, options, scheduler_fn
from firebase_functions.params import SecretParam

# Local application imports
from journal import accounts
from journal.db import FirestoreDbClient
from journal.identity import FirebaseAuthClient
from journal.media import CloudinaryMediaClient, MediaError
from shared.firebase_constants import DEV_PREFIX, PROD_PREFIX

CLOUDINARY_CLOUD_NAME = SecretParam("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = SecretParam("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = SecretParam("CLOUDINARY_API_SECRET")
CLOUDINARY_SECRETS = [CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET]

SCHEDULE_TIMEZONE = scheduler_fn.Timezone("Asia/Ho_Chi_Minh")
DELETE_ACCOUNTS_TIMEOUT = 540

initialize_app()


def _env_prefix() -> str:
    """'dev_' for development/preview/test projects, '' for production."""
    project = os.environ.get("GCLOUD_PROJECT", "")
    firebase_config = os.environ.get("FIREBASE_CONFIG", "")
    if project and not any(tag in project for tag in ("dev", "preview", "test")):
        return PROD_PREFIX
    if "prod" in firebase_config:
        return PROD_PREFIX
    return DEV_PREFIX


def _media_client() -> CloudinaryMediaClient:
    return CloudinaryMediaClient(
        cloud_name=CLOUDINARY_CLOUD_NAME.value.strip(),
        api_key=CLOUDINARY_API_KEY.value.strip(),
        api_secret=CLOUDINARY_API_SECRET.value.strip(),
    )


def _db_client() -> FirestoreDbClient:
    return FirestoreDbClient(firestore.client())


@https_fn.on_call(secrets=CLOUDINARY_SECRETS, memory=options.MemoryOption.MB_256)
def delete_cloudinary_image(req: https_fn.CallableRequest) -> dict:
    """Deletes one Cloudinary image on behalf of a signed-in user."""
    return _delete_image(req.auth, req.data)


def _delete_image(auth: https_fn.AuthData | None, data: dict | None) -> dict:
    if auth is None:
        raise https_fn.HttpsError(
            code=https_fn.FunctionsErrorCode.UNAUTHENTICATED,
            message="User must be authenticated to delete images",
        )

    public_id = (data or {}).get("publicId")
    if not public_id or not isinstance(public_id, str):
        raise https_fn.HttpsError(
            code=https_fn.FunctionsErrorCode.INVALID_ARGUMENT,
            message="publicId is required and must be a string",
        )

    logger.info(f"Deleting image {public_id} for user {auth.uid}")
    try:
        result = accounts.delete_single_image(_media_client(), public_id)
    except (accounts.ImageDeletionError, MediaError) as e:
        logger.error(f"Error deleting {public_id} from Cloudinary: {e}")
        raise https_fn.HttpsError(
            code=https_fn.FunctionsErrorCode.INTERNAL,
            message=str(e) or "Failed to delete image from Cloudinary",
        )
    return asdict(result)


@scheduler_fn.on_schedule(
    schedule=accounts.DELETE_ACCOUNTS_SCHEDULE,
    timezone=SCHEDULE_TIMEZONE,
    timeout_sec=DELETE_ACCOUNTS_TIMEOUT,
    memory=options.MemoryOption.MB_512,
    secrets=CLOUDINARY_SECRETS,
)
def delete_removed_accounts(event: scheduler_fn.ScheduledEvent) -> None:
    """Permanently deletes accounts past the removal grace period."""
    summary = accounts.delete_removed_accounts(
        _db_client(),
        _media_client(),
        FirebaseAuthClient(),
        prefixes=[DEV_PREFIX, PROD_PREFIX],
    )
    logger.info(
        f"deleteRemovedAccounts finished: {summary.deleted} deleted, "
        f"{summary.failed} failed"
    )


@scheduler_fn.on_schedule(
    schedule=accounts.CLEANUP_SCHEDULE,
    timezone=SCHEDULE_TIMEZONE,
    timeout_sec=60,
    memory=options.MemoryOption.MB_256,
)
def cleanup_cron_history(event: scheduler_fn.ScheduledEvent) -> None:
    """Keeps the cron history and daily stats collections small."""
    counts = accounts.cleanup_cron_history(_db_client(), _env_prefix())
    logger.info(f"cleanupCronHistory finished: {counts}")
