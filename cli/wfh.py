#!/usr/bin/env python3
"""
wfh — Workflow Healer CLI.

A command-line interface for the workflow healer API.

Usage:
    wfh health                          Show API health
    wfh heal <file> [--identity ID]     Heal a workflow JSON file
    wfh heal <file> --local             Heal in-process, no API needed
    wfh deploy <file> [--identity ID]   Heal and deploy to n8n
    wfh status --identity ID            Recent deployments for a caller

Without --seed, webhook path suffixes are picked fresh for every run.

Environment variables:
    WFH_BASE_URL    API base URL (default: http://localhost:8000)
    WFH_API_KEY     API key for authenticated requests
"""

import argparse
import json
import os
import sys

import httpx

BASE_URL = os.getenv("WFH_BASE_URL", "http://localhost:8000")
API_KEY = os.getenv("WFH_API_KEY", "")
OUTPUT_JSON = False

TIMEOUTS = {"GET": 30, "POST": 60}


def fail(message):
    print(f"Error: {message}")
    sys.exit(1)


def describe_error(resp):
    """One-line reason for a failed API response.

    Malformed-workflow responses carry {error, node_index, field} in detail.
    """
    try:
        detail = resp.json().get("detail", resp.text)
    except ValueError:
        return resp.text
    if isinstance(detail, dict) and "error" in detail:
        where = [f"{k}={detail[k]}" for k in ("node_index", "field") if detail.get(k) is not None]
        return f"{detail['error']} ({', '.join(where)})" if where else detail["error"]
    return detail


def api_call(method, path, params=None, body=None):
    """Call the healer API and return the decoded JSON body.

    Exits with a message when the API is unreachable or answers >= 400.
    """
    headers = {"Content-Type": "application/json"}
    if API_KEY:
        headers["X-API-Key"] = API_KEY
    try:
        resp = httpx.request(method, f"{BASE_URL}{path}", params=params, json=body,
                             headers=headers, timeout=TIMEOUTS.get(method, 30))
    except httpx.HTTPError as e:
        fail(f"Cannot reach {BASE_URL}: {e}")
    if resp.status_code >= 400:
        print(f"Error {resp.status_code}: {describe_error(resp)}")
        sys.exit(1)
    return resp.json()


def render(data, summary):
    """Raw JSON with --json, otherwise the command's human summary."""
    if OUTPUT_JSON:
        print(json.dumps(data, indent=2, default=str))
    else:
        summary(data)


def table_lines(headers, rows):
    """Left-aligned columns sized to the widest cell."""
    cells = [[str(c) for c in row] for row in rows]
    widths = [max([len(h)] + [len(r[i]) for r in cells]) for i, h in enumerate(headers)]
    fmt = " | ".join(f"{{:<{w}}}" for w in widths)
    return [fmt.format(*headers), "-+-".join("-" * w for w in widths)] + [fmt.format(*r) for r in cells]


def print_rows(headers, rows, empty="(no data)"):
    print("\n".join(table_lines(headers, rows)) if rows else empty)


def load_workflow(path):
    """Read a workflow JSON file, exiting with a message on failure."""
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        fail(f"Cannot read workflow {path}: {e}")


def print_heal_summary(data):
    print(f"Workflow: {data['graph'].get('name', '?')}")
    print(f"Confidence: {data['confidence']}")
    print_rows(["Rule", "Target", "Fix"],
               [[f["rule"], f["target"], f["description"]] for f in data.get("fixes", [])],
               empty="(no fixes needed)")


def print_deploy_summary(data):
    print_heal_summary(data["heal"])
    deploy = data["deploy"]
    print(f"\nDeploy: {deploy['status']} (n8n id: {deploy.get('remote_id') or '-'})")
    if deploy.get("message"):
        print(f"Message: {deploy['message']}")


def print_status_summary(data):
    print_rows(["ID", "n8n ID", "Status", "Created"],
               [[d["id"][:8], d.get("external_id") or "-", d["status"], (d.get("created_at") or "")[:19]]
                for d in data.get("deployments", [])])


# ── Commands ─────────────────────────────────────────────────────


def cmd_health(args):
    """Show API health."""
    render(api_call("GET", "/health"), lambda d: print(f"OK: {d.get('ok', False)}"))


def cmd_heal(args):
    """Heal a workflow file, remotely or in-process."""
    workflow = load_workflow(args.file)
    if args.local:
        from healer.graph_model import MalformedGraphError
        from healer.heal_engine import heal
        from healer.isolation import context_from_env

        try:
            data = heal(workflow, context_from_env(args.identity, seed=args.seed)).to_dict()
        except MalformedGraphError as e:
            fail(e)
    else:
        data = api_call("POST", "/heal", body={
            "workflow": workflow, "identity": args.identity, "seed": args.seed,
        })
    render(data, print_heal_summary)


def cmd_deploy(args):
    """Heal and deploy a workflow file to n8n."""
    data = api_call("POST", "/deploy/n8n", body={
        "workflow": load_workflow(args.file),
        "identity": args.identity,
        "seed": args.seed,
        "workflow_id": args.workflow_id,
        "activate": args.activate,
    })
    render(data, print_deploy_summary)


def cmd_status(args):
    """Recent deployments for a caller."""
    render(api_call("GET", "/deploy/status", params={"identity": args.identity}),
           print_status_summary)


def build_parser():
    parser = argparse.ArgumentParser(prog="wfh", description="Workflow Healer CLI")
    parser.add_argument("--url", default=BASE_URL, help="API base URL")
    parser.add_argument("--key", default=API_KEY, help="API key")
    parser.add_argument("--json", dest="json_output", action="store_true", help="Output raw JSON")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("health", help="Show API health")

    hp = sub.add_parser("heal", help="Heal a workflow JSON file")
    hp.add_argument("file", help="Path to n8n workflow JSON")
    hp.add_argument("--identity", help="Caller identity for isolation naming")
    hp.add_argument("--seed", type=int, help="Webhook path suffix seed (fresh per run if omitted)")
    hp.add_argument("--local", action="store_true", help="Heal in-process instead of via the API")

    dp = sub.add_parser("deploy", help="Heal and deploy to n8n")
    dp.add_argument("file", help="Path to n8n workflow JSON")
    dp.add_argument("--identity", help="Caller identity for isolation naming")
    dp.add_argument("--seed", type=int, help="Webhook path suffix seed (fresh per run if omitted)")
    dp.add_argument("--workflow-id", help="Update this n8n workflow instead of creating one")
    dp.add_argument("--activate", action="store_true", help="Activate after deploying")

    sp = sub.add_parser("status", help="Recent deployments")
    sp.add_argument("--identity", required=True, help="Caller identity")

    return parser


def main(argv=None):
    global BASE_URL, API_KEY, OUTPUT_JSON

    parser = build_parser()
    args = parser.parse_args(argv)
    BASE_URL = args.url
    API_KEY = args.key
    OUTPUT_JSON = args.json_output

    cmd_map = {
        "health": cmd_health,
        "heal": cmd_heal,
        "deploy": cmd_deploy,
        "status": cmd_status,
    }

    if args.command in cmd_map:
        cmd_map[args.command](args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
