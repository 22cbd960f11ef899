"""CLI entry point for the HTTP service."""

import argparse

import uvicorn

from sharepad.config.settings import get_settings


def main() -> None:
    """Run the HTTP service."""
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Sharepad shared scratchpad server")
    parser.add_argument("-a", "--host", default=settings.host, help="Bind address")
    parser.add_argument("-p", "--port", type=int, default=settings.port, help="Bind port")
    args = parser.parse_args()

    uvicorn.run(
        "sharepad.server.main:app",
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    main()
