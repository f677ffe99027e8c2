from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _budget(raw: str) -> int | str:
    """'1' -> 1, '25%' -> '25%'."""
    return int(raw) if raw.strip().isdigit() else raw


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Fleet Rollout Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("--user", default="admin")
    p.add_argument("--password", default="admin")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_list = sub.add_parser("deployments", help="List deployments, or show one with its replica sets")
    s_list.add_argument("name", nargs="?")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--deployment")

    s_apply = sub.add_parser("apply", help="Create or update a deployment's desired state")
    s_apply.add_argument("--name", required=True)
    s_apply.add_argument("--replicas", type=int, default=1)
    s_apply.add_argument("--template", required=True, help="Template as JSON, or @file.json")
    s_apply.add_argument("--strategy", choices=["RollingUpdate", "InPlace"], default="RollingUpdate")
    s_apply.add_argument("--max-surge", type=_budget)
    s_apply.add_argument("--max-unavailable", type=_budget)
    s_apply.add_argument("--revision-history-limit", type=int)
    s_apply.add_argument("--paused", action="store_true")

    s_scale = sub.add_parser("scale", help="Change a deployment's replica count")
    s_scale.add_argument("name")
    s_scale.add_argument("--replicas", type=int, required=True)

    s_rec = sub.add_parser("reconcile", help="Run one rollout pass now")
    s_rec.add_argument("name")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")
    auth = (args.user, args.password)

    if args.cmd == "deployments":
        url = f"{base}/deployments/{args.name}" if args.name else f"{base}/deployments"
        r = requests.get(url, timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.deployment:
            params["deployment"] = args.deployment
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    if args.cmd == "apply":
        raw = args.template
        if raw.startswith("@"):
            with open(raw[1:], encoding="utf-8") as f:
                raw = f.read()
        payload = {
            "name": args.name,
            "replicas": args.replicas,
            "template": json.loads(raw),
            "strategy": args.strategy,
            "paused": args.paused,
        }
        if args.max_surge is not None:
            payload["max_surge"] = args.max_surge
        if args.max_unavailable is not None:
            payload["max_unavailable"] = args.max_unavailable
        if args.revision_history_limit is not None:
            payload["revision_history_limit"] = args.revision_history_limit
        r = requests.post(f"{base}/deployments", json=payload, auth=auth, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "scale":
        r = requests.put(
            f"{base}/deployments/{args.name}/scale", json={"replicas": args.replicas}, auth=auth, timeout=30
        )
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "reconcile":
        r = requests.post(f"{base}/deployments/{args.name}/reconcile", auth=auth, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
