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

# Firestore collection names. Development data lives in the same project
# under the DEV_PREFIX-prefixed variant of each collection.
DEV_PREFIX = "dev_"
PROD_PREFIX = ""

MEMORIES_COLLECTION = "memories"
USERS_COLLECTION = "users"
ANNIVERSARY_COLLECTION = "AnniversaryEvent"
USER_EFFECTS_COLLECTION = "userEffects"
SYSTEM_STATS_COLLECTION = "system_stats"
CRON_HISTORY_COLLECTION = "cron_history"
CRON_STATS_DAILY_COLLECTION = "cron_stats_daily"

CRON_JOBS_DOCUMENT = "cron_jobs"

USER_STATUS_REMOVED = "Removed"
USER_ROLES = ("User", "SysAdmin")


def collection_name(prefix: str, collection: str) -> str:
    return f"{prefix}{collection}"
