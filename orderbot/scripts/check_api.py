# orderbot/scripts/check_api.py
"""
Probe the backend catalog endpoints and print status, shape and a short
preview of each response:

    python -m orderbot.scripts.check_api
"""
import json
import sys
from typing import List

import requests

from orderbot.config import load_settings

PROBE_PATHS = [
    "/",
    "/produtos",
    "/ensacados",
    "/cereais",
    "/itens",
    "/produtos?limit=100",
    "/api/produtos",
    "/api/ensacados",
]


def probe(base_url: str, paths: List[str], auth_token: str | None = None, timeout: float = 10.0) -> int:
    headers = {"Authorization": auth_token} if auth_token else {}
    failures = 0

    for path in paths:
        url = f"{base_url.rstrip('/')}{path}"
        try:
            resp = requests.get(url, headers=headers, timeout=timeout)
        except requests.RequestException as e:
            print(f"{path} -> error: {e}", file=sys.stderr)
            failures += 1
            continue

        if resp.status_code >= 400:
            print(f"{path} -> HTTP {resp.status_code} {resp.text[:200]}", file=sys.stderr)
            failures += 1
            continue

        try:
            data = resp.json()
        except ValueError:
            print(f"{path} status={resp.status_code} type=text preview={resp.text[:250]!r}")
            continue

        kind = "array" if isinstance(data, list) else type(data).__name__
        length = len(data) if isinstance(data, list) else "-"
        preview = json.dumps(data, ensure_ascii=False)[:250]
        print(f"{path} status={resp.status_code} type={kind} length={length} preview={preview}")

    return failures


def main() -> int:
    settings = load_settings()
    paths = list(dict.fromkeys(PROBE_PATHS + settings.catalog_endpoints))
    failures = probe(settings.api_base_url, paths, settings.api_auth_token, settings.api_timeout)
    return 1 if failures == len(paths) else 0


if __name__ == "__main__":
    sys.exit(main())
