#!/usr/bin/env python3
"""
IronQuest - launcher for the API server and the atrophy scheduler

What it does:
- Creates .venv if missing
- Installs the project (pip install -e .) into .venv
- Starts the FastAPI server (uvicorn)
- Optionally starts the scheduler loop in the background

Usage:
  python run.py                        # API server at http://127.0.0.1:8000
  python run.py --scheduler            # scheduler loop only
  python run.py --both                 # server + scheduler
  python run.py --tick                 # run one atrophy sweep now and exit
  python run.py --no-install           # skip pip install
  python run.py --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import argparse
import platform
import subprocess
import sys
import textwrap
import time
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent
VENV_DIR = PROJECT_ROOT / ".venv"

SCHEDULER_INTERVAL_SECONDS = 300


def is_windows() -> bool:
    return platform.system().lower().startswith("win")


def venv_python_path() -> Path:
    if is_windows():
        return VENV_DIR / "Scripts" / "python.exe"
    return VENV_DIR / "bin" / "python"


def run(cmd: list[str], *, check: bool = True) -> int:
    print("\n> " + " ".join(cmd))
    return subprocess.run(cmd, cwd=str(PROJECT_ROOT), check=check).returncode


def ensure_project_layout() -> None:
    if not (PROJECT_ROOT / "pyproject.toml").exists():
        raise FileNotFoundError(f"Missing pyproject.toml in {PROJECT_ROOT}")
    if not (PROJECT_ROOT / "ironquest" / "main.py").exists():
        raise FileNotFoundError(f"Missing ironquest/main.py in {PROJECT_ROOT}")


def ensure_venv() -> Path:
    py = venv_python_path()
    if py.exists():
        return py

    print(f"Creating virtual environment at: {VENV_DIR}")
    run([sys.executable, "-m", "venv", str(VENV_DIR)])
    if not py.exists():
        raise RuntimeError(f"Virtualenv created but python not found at: {py}")
    return py


def pip_install(venv_py: Path) -> None:
    print("Upgrading pip...")
    run([str(venv_py), "-m", "pip", "install", "--upgrade", "pip"])
    print("Installing IronQuest...")
    run([str(venv_py), "-m", "pip", "install", "-e", str(PROJECT_ROOT)])


def scheduler_loop(venv_py: Path) -> int:
    # Each pass is a no-op outside the local midnight window.
    print(f"Checking the atrophy window every {SCHEDULER_INTERVAL_SECONDS}s (Ctrl+C to stop)...\n")
    while True:
        run([str(venv_py), "-m", "ironquest.jobs.schedule_runner"], check=False)
        time.sleep(SCHEDULER_INTERVAL_SECONDS)


def start_scheduler(venv_py: Path) -> subprocess.Popen:
    print("Starting scheduler loop in background...")
    creationflags = 0
    if is_windows():
        creationflags = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)

    return subprocess.Popen(
        [str(venv_py), str(Path(__file__).resolve()), "--scheduler", "--no-install"],
        cwd=str(PROJECT_ROOT),
        creationflags=creationflags,
    )


def start_server(venv_py: Path, host: str, port: int, reload: bool) -> int:
    cmd = [str(venv_py), "-m", "uvicorn", "ironquest.main:app", "--host", host, "--port", str(port)]
    if reload:
        cmd.append("--reload")

    url = f"http://{host if host != '0.0.0.0' else '127.0.0.1'}:{port}"
    print(f"\nStarting server: {url} (docs at {url}/docs)")
    print("Press Ctrl+C to stop.\n")
    return run(cmd, check=False)


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="IronQuest Launcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=textwrap.dedent(
            """
            Launcher for the IronQuest API.

            Modes:
              (default) server only
              --scheduler  scheduler loop only
              --both       server + scheduler loop
              --tick       one atrophy sweep, then exit
            """
        ).strip(),
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--scheduler", action="store_true", help="Run only the scheduler loop")
    mode.add_argument("--both", action="store_true", help="Run server + scheduler loop")
    mode.add_argument("--tick", action="store_true", help="Run the atrophy sweep once and exit")

    parser.add_argument("--no-install", action="store_true", help="Skip pip install (assumes .venv is ready)")
    parser.add_argument("--host", default="127.0.0.1", help="Server host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    parser.add_argument("--no-reload", action="store_true", help="Disable uvicorn --reload")

    args = parser.parse_args()

    ensure_project_layout()
    venv_py = ensure_venv()

    if not args.no_install:
        pip_install(venv_py)

    if args.tick:
        return run([str(venv_py), "-m", "ironquest.jobs.atrophy_tick"], check=False)

    if args.scheduler:
        return scheduler_loop(venv_py)

    sched_proc: subprocess.Popen | None = None
    if args.both:
        sched_proc = start_scheduler(venv_py)

    try:
        return start_server(venv_py, args.host, args.port, not args.no_reload)
    finally:
        if sched_proc is not None and sched_proc.poll() is None:
            print("\nStopping scheduler loop...")
            sched_proc.terminate()


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except KeyboardInterrupt:
        print("\nStopped.")
        raise
