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

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class DeleteImageResult:
    """Result of the callable image delete."""

    success: bool
    result: str
    message: str


@dataclass
class CronJobStats:
    """Per-job entry in system_stats/cron_jobs (stored camelCase)."""

    last_run: datetime
    status: str
    schedule: str
    execution_time_ms: int
    last_error: Optional[str] = None
    accounts_deleted: Optional[int] = None
    accounts_failed: Optional[int] = None
    records_deleted: Optional[int] = None
    history_deleted: Optional[int] = None
    stats_deleted: Optional[int] = None


@dataclass
class CronHistoryEntry:
    """One document in cron_history (stored camelCase)."""

    job_name: str
    status: str
    start_time: datetime
    end_time: datetime
    execution_time_ms: int
    created_at: datetime
    error: Optional[str] = None
    accounts_deleted: Optional[int] = None
    accounts_failed: Optional[int] = None
    triggered_by: str = "auto"


@dataclass
class AccountDeletionSummary:
    """Outcome of one delete_removed_accounts run across environments."""

    deleted: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "success" if self.failed == 0 else "partial_success"
