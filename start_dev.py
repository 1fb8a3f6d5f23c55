"""Convenience launcher for the filedeck development server.

Usage:
    python3 start_dev.py [--port 8000] [--root ./some/dir]

Press Ctrl+C to stop. The script prefers a backend virtual environment
(backend/.venv) and runs Uvicorn with --reload from backend/.
"""

from __future__ import annotations

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent
BACKEND_DIR = ROOT_DIR / "backend"

BACKEND_VENV = BACKEND_DIR / (
    ".venv\\Scripts\\python.exe" if os.name == "nt" else ".venv/bin/python"
)

if os.name == "nt":
    os.system("")  # enable VT100 on Windows 10+

CYAN = "\033[36m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
RESET = "\033[0m"


def log(level: str, msg: str) -> None:
    colors = {"info": CYAN, "start": GREEN, "stop": YELLOW, "error": RED}
    print(f"{colors.get(level, '')}[{level}]{RESET} {msg}")


def resolve_backend_python() -> str:
    """Find the best Python interpreter for the backend."""
    if BACKEND_VENV.exists():
        return str(BACKEND_VENV)
    log("info", "No venv found, using system Python")
    return sys.executable


def check_dependencies(python: str) -> bool:
    """Verify critical packages are importable."""
    result = subprocess.run(
        [python, "-c", "import fastapi, uvicorn, aiosqlite, apscheduler, multipart"],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        log("error", "Missing dependencies. Run:")
        log("error", f"  cd {ROOT_DIR} && pip install -e '.[test]'")
        return False
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the filedeck dev server")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--root", help="Storage root served to clients")
    args = parser.parse_args()

    python = resolve_backend_python()
    log("info", f"Python:  {python}")
    log("info", f"Backend: {BACKEND_DIR}")
    if not check_dependencies(python):
        return 1

    env = dict(os.environ)
    env.setdefault("FILEDECK_DEBUG", "true")
    env.setdefault("FILEDECK_LOG_LEVEL", "INFO")
    env.setdefault("FILEDECK_ENVIRONMENT", "development")
    if args.root:
        env["FILEDECK_ROOT_DIR"] = str(Path(args.root).resolve())

    cmd = [
        python, "-m", "uvicorn", "filedeck.main:app",
        "--reload", "--host", "0.0.0.0", "--port", str(args.port),
    ]
    log("start", f"backend: {' '.join(cmd)}")
    proc = subprocess.Popen(cmd, cwd=BACKEND_DIR, env=env, start_new_session=os.name != "nt")

    log("info", "")
    log("info", f"  API:     http://localhost:{args.port}/api")
    log("info", f"  Health:  http://localhost:{args.port}/api/health")
    log("info", f"  Docs:    http://localhost:{args.port}/docs")
    log("info", "")
    log("info", "Press Ctrl+C to stop")

    try:
        return proc.wait() or 0
    except KeyboardInterrupt:
        print()
        log("stop", "Ctrl+C received, shutting down...")
        if os.name != "nt":
            try:
                os.killpg(os.getpgid(proc.pid), signal.SIGTERM)
            except ProcessLookupError:
                pass
        else:
            proc.terminate()
        try:
            proc.wait(timeout=10)
        except subprocess.TimeoutExpired:
            proc.kill()
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
