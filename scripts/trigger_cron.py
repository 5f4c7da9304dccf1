#!/usr/bin/env python3
"""
Trigger the Taskflow background jobs over HTTP.

Meant for deployments that run the API with ``CRON_ENABLED=false`` and
schedule the jobs externally (system cron, a Kubernetes CronJob, ...).
Authenticates with a super admin bearer token: either the static
``SUPER_ADMIN_TOKEN`` or a token printed by ``create_token.py``.

Usage:
    python scripts/trigger_cron.py --url http://localhost:8000 --token "$SUPER_ADMIN_TOKEN"
    python scripts/trigger_cron.py --job overdue-tasks --status

Exit status is 0 when every requested job succeeded.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Dict, Optional, Tuple

import requests

logger = logging.getLogger("trigger_cron")

JOBS = ("overdue-tasks", "routinary-tasks")


class CronClient:
    """Minimal client for the ``/api/v1/cron`` routes."""

    def __init__(self, base_url: str, token: str, session: Optional[requests.Session] = None) -> None:
        self.base_url = base_url.rstrip("/") + "/api/v1/cron"
        self.token = token
        self.session = session or requests.Session()

    def _request(self, method: str, job: str) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
        """Return ``(data, error)``; exactly one of them is ``None``."""
        url = f"{self.base_url}/{job}"
        try:
            logger.debug("Sending %s request to %s", method, url)
            response = self.session.request(
                method=method,
                url=url,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=300,
            )
            response.raise_for_status()
            return response.json(), None
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            message = ""
            if exc.response is not None:
                try:
                    message = exc.response.json().get("detail", "")
                except ValueError:
                    message = exc.response.text
            logger.error("Request for %s failed (%s): %s", job, status, message or exc)
            return None, {"status_code": status, "message": message or str(exc)}
        except requests.RequestException as exc:
            logger.error("Request for %s failed: %s", job, exc)
            return None, {"status_code": None, "message": str(exc)}

    def trigger(self, job: str):
        return self._request("POST", job)

    def status(self, job: str):
        return self._request("GET", job)


def main() -> int:
    ap = argparse.ArgumentParser(description="Trigger Taskflow cron jobs.")
    ap.add_argument("--url", default=os.getenv("TASKFLOW_URL", "http://localhost:8000"))
    ap.add_argument("--token", default=os.getenv("SUPER_ADMIN_TOKEN", ""))
    ap.add_argument("--job", choices=JOBS, action="append", help="Job to run (default: all)")
    ap.add_argument("--status", action="store_true", help="Only print the job status")
    args = ap.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    if not args.token:
        logger.error("A super admin token is required (--token or SUPER_ADMIN_TOKEN)")
        return 2

    client = CronClient(args.url, args.token)
    failed = False
    for job in args.job or JOBS:
        data, error = client.status(job) if args.status else client.trigger(job)
        if error:
            failed = True
            continue
        print(json.dumps({job: data}, indent=2))
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
