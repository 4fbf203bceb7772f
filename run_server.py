"""Start the Taleweave API with uvicorn.

Usage:
    python run_server.py [--host 0.0.0.0] [--port 8000] [--reload]
"""

import argparse
import os

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Run the Taleweave API server")
    parser.add_argument("--host", default=os.getenv("TALEWEAVE_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("TALEWEAVE_PORT", "8000")))
    parser.add_argument("--reload", action="store_true", help="Reload on source changes")
    args = parser.parse_args()

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
