from typing import Any

import httpx

from docproc.database.models import Job, Result
from docproc.database.serialization import dump
from docproc.logging.logger import Log


def build_payload(job: Job, result: Result | None = None) -> dict[str, Any]:
    """Callback body: ``{jobId, status, result?, error?}``."""
    payload: dict[str, Any] = {"jobId": job.job_id, "status": job.status.value}
    if result is not None:
        payload["result"] = dump(result)
    if job.error_message:
        payload["error"] = job.error_message
    return payload


class WebhookNotifier:
    """Single best-effort POST of the job outcome to its callback URL.

    Delivery failures are logged and never raised.
    """

    def __init__(
        self,
        *,
        timeout_seconds: int = 10,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._http = http_client or httpx.Client(timeout=timeout_seconds)

    def notify(self, job: Job, result: Result | None = None) -> bool:
        if not job.callback_url:
            return False
        try:
            response = self._http.post(
                job.callback_url,
                json=build_payload(job, result),
                timeout=self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            Log.warning(f"Webhook for job {job.job_id} failed: {exc}")
            return False
        if response.status_code >= 400:
            Log.warning(
                f"Webhook for job {job.job_id} rejected with status {response.status_code}"
            )
            return False
        Log.info(f"Webhook delivered for job {job.job_id} ({job.status.value})")
        return True
