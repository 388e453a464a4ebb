#!/usr/bin/env python
"""
Start the Catalog Pricing API under uvicorn.

Usage:
    python scripts/run_api.py
    python scripts/run_api.py --port 8080 --reload
"""
import argparse
import os
import subprocess
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Run the Catalog Pricing API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", default="8000")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument("--data-dir", help="Overrides CATALOG_PRICING_DATA_DIR")
    args = parser.parse_args()

    project_root = Path(__file__).parent.parent
    env = os.environ.copy()
    src_path = str(project_root / "src")
    env["PYTHONPATH"] = os.pathsep.join(p for p in (src_path, env.get("PYTHONPATH")) if p)
    if args.data_dir:
        env["CATALOG_PRICING_DATA_DIR"] = str(Path(args.data_dir).resolve())

    command = [
        sys.executable, "-m", "uvicorn",
        "catalog_pricing.api.main:app",
        "--host", args.host,
        "--port", str(args.port),
    ]
    if args.reload:
        command.append("--reload")

    print(f"Starting Catalog Pricing API on {args.host}:{args.port}...")
    try:
        subprocess.run(command, cwd=project_root, env=env)
    except KeyboardInterrupt:
        print("\nAPI stopped.")


if __name__ == "__main__":
    main()
