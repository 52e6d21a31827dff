#!/usr/bin/env python3
"""Start the dispatch API with uvicorn, honouring the PORT environment variable."""

import os
import sys

import uvicorn

from src.dispatch.config import settings


def resolve_port(raw: str | None) -> int:
    try:
        return int(raw or "8000")
    except ValueError:
        print(f"Warning: Invalid PORT value '{raw}', using default 8000", file=sys.stderr)
        return 8000


def main() -> None:
    port = resolve_port(os.environ.get("PORT"))
    print(f"Starting {settings.app_name} on port {port}...", file=sys.stderr)
    uvicorn.run(
        "src.dispatch.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=port,
        log_level=settings.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    main()
