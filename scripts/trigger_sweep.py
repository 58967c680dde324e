"""Trigger one delivery sweep and print the summary JSON.

Meant for cron: exits non-zero when the sweep reports a configuration error.
"""

import argparse
import json

import httpx


def main() -> None:
    """CLI entrypoint for scheduled sweeps."""

    parser = argparse.ArgumentParser(description="Run one notification delivery sweep.")
    parser.add_argument("--base-url", default="http://localhost:8005")
    parser.add_argument("--api-key", default="dev-secret")
    parser.add_argument("--tenant-id", default=None)
    args = parser.parse_args()

    params = {"tenant_id": args.tenant_id} if args.tenant_id else None
    resp = httpx.post(
        f"{args.base_url}/send-scheduled-notifications",
        params=params,
        headers={"x-api-key": args.api_key},
        timeout=120.0,
    )
    print(json.dumps(resp.json(), indent=2))
    if resp.status_code >= 400:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
