"""Accept matched opportunities on the portal (or preview them in dry-run mode)."""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import requests

from subwatch.config import PortalSettings
from subwatch.log import get_logger
from subwatch.models import ApplicationResult, BatchApplicationResult, JobRecord, SessionBundle
from subwatch.sources.portal import auth_headers

log = get_logger(__name__)

_ACCEPTED = (200, 201, 204)


class ApplicationDispatcher(ABC):
    @abstractmethod
    def apply(self, job: JobRecord, token: str, identity: str, dry_run: bool) -> ApplicationResult:
        pass


def _portal_error(r: requests.Response) -> str:
    try:
        data: Any = r.json()
    except ValueError:
        return "Bad request"
    if isinstance(data, dict):
        errors = data.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            if errors[0].get("defaultMessage"):
                return str(errors[0]["defaultMessage"])
        if data.get("message"):
            return str(data["message"])
    return "Bad request"


class PortalApplicationDispatcher(ApplicationDispatcher):
    def __init__(self, settings: PortalSettings, *, http: requests.Session | None = None) -> None:
        self.settings = settings
        self.http = http or requests.Session()

    def apply(self, job: JobRecord, token: str, identity: str, dry_run: bool) -> ApplicationResult:
        where = job.location_name or "N/A"
        if dry_run:
            return ApplicationResult(
                job_id=job.id, job_title=job.title, status="skipped",
                message=f"[DRY RUN] Would accept {job.title} at {where}",
            )

        url = f"{self.settings.base_url.rstrip('/')}/api/substitute-jobs/{job.id}/accept"
        user_id: int | str = int(identity) if identity.isdigit() else identity
        log.info("Accepting %s at %s (job %s)", job.title, where, job.id)
        try:
            r = self.http.post(
                url,
                json={"userId": user_id},
                headers=auth_headers(token),
                timeout=self.settings.request_timeout,
            )
        except requests.RequestException as exc:
            return ApplicationResult(job.id, job.title, "failed", f"Error: {exc}")

        if r.status_code in _ACCEPTED:
            return ApplicationResult(
                job.id, job.title, "success",
                f"Successfully accepted {job.title} at {where}",
                timestamp=datetime.now(timezone.utc),
            )
        if r.status_code == 400:
            return ApplicationResult(job.id, job.title, "failed", f"Cannot accept job: {_portal_error(r)}")
        if r.status_code == 409:
            return ApplicationResult(
                job.id, job.title, "failed",
                f"Already accepted or job no longer available ({r.status_code})",
            )
        return ApplicationResult(job.id, job.title, "failed", f"API error: {r.status_code}")


def apply_to_jobs(
    dispatcher: ApplicationDispatcher,
    jobs: list[JobRecord],
    bundle: SessionBundle,
    *,
    dry_run: bool = True,
) -> BatchApplicationResult:
    """Dispatch each job independently and tally the outcomes."""
    log.info(
        "Processing %d job application(s) in %s mode",
        len(jobs), "DRY RUN" if dry_run else "LIVE",
    )
    results: list[ApplicationResult] = []
    for job in jobs:
        try:
            result = dispatcher.apply(job, bundle.token, bundle.identity, dry_run)
        except Exception as exc:
            result = ApplicationResult(job.id, job.title, "failed", f"Error: {exc}")
        results.append(result)
        if result.status == "success":
            log.info("  ✓ %s", result.message)
        elif result.status == "failed":
            log.warning("  ✗ %s", result.message)
        else:
            log.info("  ⏭ %s", result.message)

    successful = sum(1 for r in results if r.status == "success")
    failed = sum(1 for r in results if r.status == "failed")
    skipped = sum(1 for r in results if r.status == "skipped")
    prefix = "[DRY RUN] Would apply to" if dry_run else "Applied to"
    return BatchApplicationResult(
        total_requested=len(jobs),
        successful=successful,
        failed=failed,
        skipped=skipped,
        results=results,
        dry_run=dry_run,
        summary=f"{prefix} {successful} job(s). {failed} failed, {skipped} skipped.",
    )
