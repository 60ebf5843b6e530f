"""Container healthcheck for the HTTP transport.

Probes the server's /health route and exits non-zero unless the connection
pool reports READY. Uses stdlib only so it runs in a slim image.
"""

from __future__ import annotations

import json
import os
import sys
from typing import Final
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

DEFAULT_URL: Final[str] = "http://127.0.0.1:8000/health"


def main() -> int:
    url = os.environ.get("POSTGRES_MCP_HEALTH_URL", DEFAULT_URL)
    req = Request(url, headers={"User-Agent": "postgres-mcp/healthcheck"})  # noqa: S310
    try:
        with urlopen(req, timeout=4) as resp:  # noqa: S310 - operator-supplied URL
            data = json.loads(resp.read().decode("utf-8"))
    except HTTPError as exc:
        # 503 carries the pool phase in its body.
        print(f"unhealthy ({exc.code}): {exc.read().decode('utf-8', 'replace')}", file=sys.stderr)
        return 1
    except (URLError, TimeoutError, ValueError) as exc:
        print(f"healthcheck error: {exc}", file=sys.stderr)
        return 1

    if data.get("status") != "healthy" or data.get("pool") != "ready":
        print(f"payload not healthy: {data}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - used by Docker
    raise SystemExit(main())
