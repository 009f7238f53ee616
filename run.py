import argparse
import sys

import uvicorn


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Repair Shop Punch Clock")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the punch clock API server")
    serve.add_argument("--host", default="0.0.0.0", help="Host interface")
    serve.add_argument("--port", type=int, default=8000, help="Port")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    kiosk = subparsers.add_parser("kiosk", help="Run a capture kiosk against a running server")
    kiosk.add_argument("kiosk_args", nargs=argparse.REMAINDER, help="Arguments passed to the kiosk")

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    if args.command == "serve":
        uvicorn.run("punchclock.main:app", host=args.host, port=args.port, reload=args.reload, log_level="info")
        return 0

    if args.command == "kiosk":
        from kiosk.main import main as kiosk_main

        return kiosk_main(args.kiosk_args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
