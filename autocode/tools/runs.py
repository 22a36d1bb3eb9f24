import argparse
import datetime as dt
import json
from typing import Any

from autocode.config import load_config
from autocode.core.code_agent import run_code_agent
from autocode.core.schemas import CodeAgentEvent, MessageRole, MessageType
from autocode.llm.client import OpenAIClient
from autocode.sandbox.e2b import E2BSandboxClient
from autocode.infra.storage import (
    create_message,
    list_recent_messages,
    list_runs,
    load_fragment,
    load_run,
    use_database,
)


def format_ts(ts: float | None) -> str:
    """Convert unix timestamp -> human readable local time."""
    if not ts:
        return "UNKNOWN_TIME"
    return dt.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="runs.py")
    sub = parser.add_subparsers(dest="cmd", required=True)

    # run
    p_run = sub.add_parser("run", help="Run the coding agent for one user message")
    p_run.add_argument("--project_id", required=True)
    p_run.add_argument("--value", required=True, help="The user's request")
    p_run.add_argument("--run_id", type=str, default="", help="Reuse a run id to resume it")

    # replay
    p_replay = sub.add_parser(
        "replay",
        help="Re-drive a stored run, finished or not; completed steps come from the step cache",
    )
    p_replay.add_argument("run_id")

    # list
    p_list = sub.add_parser("list", help="List recent runs")
    p_list.add_argument("--limit", type=int, default=20)

    # show
    p_show = sub.add_parser("show", help="Show a run JSON")
    p_show.add_argument("run_id")

    # history
    p_hist = sub.add_parser("history", help="Show recent messages of a project")
    p_hist.add_argument("project_id")
    p_hist.add_argument("--limit", type=int, default=10)

    return parser


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _execute(event: CodeAgentEvent) -> int:
    cfg = load_config()
    client = OpenAIClient(model=cfg.agent_model, temperature=cfg.agent_temperature)
    output = run_code_agent(event, client=client, sandbox=E2BSandboxClient(), config=cfg)

    _print_json(output.model_dump())
    # CI-friendly: RUN_ID line for parsing
    print(f"\nRUN_ID: {event.run_id}")
    return 0 if output.summary and output.files else 1


def cmd_run(args) -> int:
    payload = {"projectId": args.project_id, "value": args.value}
    if args.run_id:
        payload["run_id"] = args.run_id
    event = CodeAgentEvent.model_validate(payload)

    # A resumed run already stored its user message
    if not load_run(event.run_id):
        create_message(
            project_id=event.project_id,
            content=event.value,
            role=MessageRole.USER,
            type=MessageType.RESULT,
        )
    return _execute(event)


def cmd_replay(args) -> int:
    run = load_run(args.run_id)
    if not run:
        print("Run not found")
        return 2
    event = CodeAgentEvent(project_id=run["project_id"], value=run["value"], run_id=args.run_id)
    return _execute(event)


def cmd_list(args) -> int:
    runs = list_runs(limit=args.limit)
    for r in runs:
        ts = format_ts(r.get("created_ts"))
        ok = "OK" if r.get("ok") else "FAIL"
        tokens = r.get("total_tokens") or 0
        cost = r.get("total_cost") or 0.0
        print(f"{ts} | {ok} | iter={r.get('iterations')} | tok={tokens} | ${cost:.4f}")
        print(f"  {r.get('run_id')} project={r.get('project_id')}")
        print(f"  {(r.get('value') or '')[:120]}")
        print()
    return 0


def cmd_show(args) -> int:
    run = load_run(args.run_id)
    if not run:
        print("Run not found")
        return 2
    run["files"] = json.loads(run.pop("files_json") or "{}")
    _print_json(run)
    return 0


def cmd_history(args) -> int:
    rows = list_recent_messages(args.project_id, limit=args.limit)
    if not rows:
        print("No messages")
        return 0
    for row in reversed(rows):
        print(f"{format_ts(row['created_ts'])} | {row['role']} | {row['type']}")
        print(f"  {row['content'][:200]}")
        fragment = load_fragment(row["message_id"])
        if fragment:
            print(f"  fragment: {fragment['title']} {fragment['sandbox_url']} files={len(fragment['files'])}")
        print()
    return 0


COMMANDS = {
    "run": cmd_run,
    "replay": cmd_replay,
    "list": cmd_list,
    "show": cmd_show,
    "history": cmd_history,
}


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    use_database(load_config().db_path)
    return COMMANDS[args.cmd](args)


if __name__ == "__main__":
    raise SystemExit(main())
