from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Blizbase CLI")
    p.add_argument("--api", default="http://localhost:8090", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_chars = sub.add_parser("characters", help="List mirrored characters")
    s_chars.add_argument("--id", dest="character_id", help="Show a single character")

    sub.add_parser("jobs", help="Show job status")

    s_run = sub.add_parser("run", help="Trigger a job now")
    s_run.add_argument("job", help="Job name, e.g. roster or self-update")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "characters":
        if args.character_id:
            r = requests.get(f"{base}/characters/{args.character_id}", timeout=10)
            _print(r.json())
            return 0 if r.ok else 1
        _print(requests.get(f"{base}/characters", timeout=10).json())
        return 0

    if args.cmd == "jobs":
        _print(requests.get(f"{base}/jobs", timeout=10).json())
        return 0

    if args.cmd == "run":
        r = requests.post(f"{base}/jobs/{args.job}/run", timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
