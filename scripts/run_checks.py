#!/usr/bin/env python3
"""Run repository checks: ruff, pyright, then pytest.

Exits non-zero on the first failing step so CI can observe status.
"""

from __future__ import annotations

import argparse
import subprocess
import sys

PATHS = ["image_resizer", "tests", "scripts"]


def run(cmd: list[str]) -> int:
    print("=>", " ".join(cmd))
    res = subprocess.run(cmd, check=False)
    return res.returncode


def main() -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument("--no-tests", action="store_true", help="Skip running pytest")
    parser.add_argument("--no-fix", action="store_true", help="Report ruff findings without fixing them")
    args = parser.parse_args()

    ruff = [sys.executable, "-m", "ruff", "check", *PATHS]
    if not args.no_fix:
        ruff.insert(4, "--fix")
    steps: list[tuple[str, list[str]]] = [
        ("ruff", ruff),
        # pyright may only be on PATH on Windows
        ("pyright", [sys.executable, "-m", "pyright", "image_resizer"] if sys.platform != "win32" else ["pyright"]),
    ]
    if not args.no_tests:
        steps.append(("pytest", [sys.executable, "-m", "pytest", "-q"]))

    for name, cmd in steps:
        rc = run(cmd)
        if rc != 0:
            print(f"{name} failed")
            return rc

    print("All checks passed")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
