#!/usr/bin/env python3
"""
Trigger a notification engine job over HTTP, for cron-style schedulers.

Usage:
    python scripts/trigger_job.py process-queue --max-items 10
    python scripts/trigger_job.py sweep-retries --limit 50
    python scripts/trigger_job.py maintenance

Environment Variables:
    ADMIN_NOTIFICATION_SECRET: Job trigger secret
    API_URL: Base API URL (default: http://localhost:8000)
"""

import argparse
import json
import os
import sys

import dotenv
import requests

dotenv.load_dotenv()

JOBS = ("process-queue", "sweep-retries", "maintenance")


def trigger_job(job: str, params: dict | None = None) -> dict:
    """Call one job endpoint and return its JSON result."""
    secret = os.getenv("ADMIN_NOTIFICATION_SECRET")
    if not secret:
        print("Error: ADMIN_NOTIFICATION_SECRET environment variable not set", file=sys.stderr)
        sys.exit(1)

    api_url = os.getenv("API_URL", "http://localhost:8000")
    url = f"{api_url}/api/v1/jobs/{job}"

    try:
        response = requests.post(
            url,
            params={k: v for k, v in (params or {}).items() if v is not None},
            headers={"X-Admin-Secret": secret},
            timeout=120,
        )
        response.raise_for_status()
        return response.json()
    except requests.exceptions.HTTPError as e:
        print(f"HTTP Error: {e}", file=sys.stderr)
        print(f"Response: {e.response.text}", file=sys.stderr)
        sys.exit(1)
    except requests.exceptions.RequestException as e:
        print(f"Request Error: {e}", file=sys.stderr)
        sys.exit(1)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Trigger a notification engine job")
    parser.add_argument("job", choices=JOBS, help="Job to run")
    parser.add_argument("--max-items", type=int, help="Batch size for process-queue")
    parser.add_argument("--limit", type=int, help="Entry limit for sweep-retries")
    args = parser.parse_args()

    params = {}
    if args.job == "process-queue":
        params["max_items"] = args.max_items
    elif args.job == "sweep-retries":
        params["limit"] = args.limit

    result = trigger_job(args.job, params)
    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
