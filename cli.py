from __future__ import annotations

import argparse
import functools
import json
import logging
import sys

from lcr import db
from lcr.compose import load_compose, select_services, write_compose
from lcr.errors import ClusterError
from lcr.health import check_health, count_records
from lcr.identity import RootIdentity
from lcr.recipe import load_stack
from lcr.settings import settings
from lcr.standalone import Standalone


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _standalone(args: argparse.Namespace) -> int:
    root_identity = RootIdentity.from_dir(settings.root_identity_dir) if settings.root_identity_dir else None
    stack = load_stack(args.recipes)
    rt = Standalone(args.root, args.project, clean=not args.no_clean, root_identity=root_identity)
    for recipe in stack.services:
        rt.add_service(recipe)
    rt.write()

    out = [{"service": str(s.id), "dir": s.directory, "command": s.command_line()} for s in rt.get_services()]
    if args.launch:
        pids = {str(s.id): p.pid for s, p in rt.launch()}
        for item in out:
            item["pid"] = pids.get(item["service"])
    _print(out)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Local Cluster Runtime CLI")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_health = sub.add_parser("health", help="Wait until the cluster is healthy (enough rows in a table)")
    s_health.add_argument("-t", "--table", default="nodes", help="Table to use for health check")
    s_health.add_argument("-n", "--number", type=int, default=10, help="Number of entries to expect in the table")
    s_health.add_argument("-d", "--duration", type=int, default=0, help="Seconds to wait (0 = no limit)")
    s_health.add_argument("--dsn", default=settings.database_dsn, help="Database connection string")

    s_list = sub.add_parser("list", help="Print the services of a compose file")
    s_list.add_argument("--compose", default="docker-compose.yaml")
    s_list.add_argument(
        "selectors", nargs="*", default=["storj", "db"], help="Service names or labels (default: storj db)"
    )

    s_sa = sub.add_parser("standalone", help="Provision a cluster of local processes from a recipe file")
    s_sa.add_argument("--recipes", required=True, help="YAML recipe file")
    s_sa.add_argument("--root", default=settings.root_dir, help="Cluster root directory")
    s_sa.add_argument("--project", default=settings.project_dir, help="Directory holding the service checkouts")
    s_sa.add_argument("--no-clean", action="store_true", default=not settings.clean, help="Keep existing service dirs")
    s_sa.add_argument("--launch", action="store_true", help="Start the services after provisioning")

    s_ev = sub.add_parser("events", help="Show recent events")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        if args.cmd == "health":
            check_health(
                args.table,
                args.number,
                counter=functools.partial(count_records, args.dsn),
                interval_s=settings.health_interval_s,
                timeout_s=args.duration,
            )
            return 0

        if args.cmd == "list":
            project = load_compose(args.compose)
            for name, service in select_services(project, args.selectors):
                print(name, service.get("image", ""))
            write_compose(project, args.compose)
            return 0

        if args.cmd == "standalone":
            return _standalone(args)

        if args.cmd == "events":
            _print(db.latest_events(args.limit))
            return 0
    except (ClusterError, OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
