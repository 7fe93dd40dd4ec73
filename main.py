"""Obscura — dev launcher. Starts the document store service in watch mode."""

import argparse
import os
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Obscura document store launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--host", default=HOST, help=f"Bind address (default: {HOST})")
    parser.add_argument("--port", default=BACKEND_PORT,
                        help=f"Port (default: {BACKEND_PORT})")
    parser.add_argument("--no-reload", action="store_true",
                        help="Disable auto-reload on source changes")
    args = parser.parse_args()

    # Build env for the subprocess so the service picks up the same data dir
    env = os.environ.copy()
    if args.data_dir:
        env["DATA_DIR"] = str(args.data_dir.resolve())

    cmd = [sys.executable, "-m", "uvicorn", "backend.app:app",
           "--host", args.host, "--port", str(args.port)]
    if not args.no_reload:
        cmd.append("--reload")

    print(f"Starting document store on http://localhost:{args.port} ...")
    try:
        subprocess.run(cmd, cwd=ROOT, env=env, check=False)
    except KeyboardInterrupt:
        print("\nShutting down...")


if __name__ == "__main__":
    main()
