"""Command-line tools for flow documents.

Usage:
    flow-editor validate flow.json
    flow-editor compile flow.json -o bot_flow.py
    flow-editor present flow.json
    flow-editor example food_ordering > flow.json
    flow-editor pull AGENT_ID --version 2 -o flow.json
    flow-editor push flow.json AGENT_ID --version 2
    flow-editor serve --port 8000
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from argparse import ArgumentParser
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from flow_editor.client import FlowsClient, Settings
from flow_editor.codegen import compile_flow
from flow_editor.examples import EXAMPLES, load_example
from flow_editor.graph import (
    CompileRefusal,
    FlowDocument,
    FlowEditorError,
    to_presentation,
    validate_graph,
    validate_structure,
)

logger = logging.getLogger("flow_editor.cli")


def _read_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        print(f"error: no such file: {path}", file=sys.stderr)
        sys.exit(2)
    except json.JSONDecodeError as e:
        print(f"error: {path} is not valid JSON: {e}", file=sys.stderr)
        sys.exit(2)


def _write(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text, encoding="utf-8")
        print(f"Wrote {output}", file=sys.stderr)
    else:
        sys.stdout.write(text)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_validate(path: str) -> int:
    raw = _read_json(path)
    structure = validate_structure(raw)
    if not structure.valid:
        print("Structural errors:")
        for error in structure.errors:
            print(f"  - {error}")
        return 1
    issues = validate_graph(raw)
    if issues:
        print("Graph errors:")
        for issue in issues:
            print(f"  - {issue}")
        return 1
    print(f"{path}: valid")
    return 0


def cmd_compile(path: str, output: str | None) -> int:
    try:
        source = compile_flow(_read_json(path))
    except CompileRefusal as e:
        print(f"Refusing to compile {path}: {e.first_error}", file=sys.stderr)
        return 1
    _write(source, output)
    return 0


def cmd_present(path: str) -> int:
    raw = _read_json(path)
    structure = validate_structure(raw)
    if not structure.valid:
        for error in structure.errors:
            print(f"  - {error}", file=sys.stderr)
        return 1
    graph = to_presentation(raw)
    print(json.dumps(graph.to_dict(), indent=2))
    return 0


def cmd_example(name: str, output: str | None) -> int:
    try:
        doc = load_example(name)
    except KeyError as e:
        print(f"error: {e.args[0]}", file=sys.stderr)
        return 1
    _write(json.dumps(doc, indent=2) + "\n", output)
    return 0


async def _pull(settings: Settings, agent_id: str, version: str) -> dict[str, Any] | None:
    async with FlowsClient(settings) as client:
        return await client.fetch_flow(agent_id, version)


async def _push(settings: Settings, agent_id: str, version: str, doc: FlowDocument) -> Any:
    async with FlowsClient(settings) as client:
        return await client.save_flow(agent_id, doc, version)


def cmd_pull(agent_id: str, version: str, output: str | None) -> int:
    settings = Settings.from_env()
    if not settings.remote_enabled:
        print("error: FLOW_EDITOR_BACKEND_URL is not set", file=sys.stderr)
        return 2
    flow = asyncio.run(_pull(settings, agent_id, version))
    if flow is None:
        print(f"No flow stored for agent {agent_id} (version {version})", file=sys.stderr)
        return 1
    _write(json.dumps(flow, indent=2) + "\n", output)
    return 0


def cmd_push(path: str, agent_id: str, version: str) -> int:
    settings = Settings.from_env()
    if not settings.remote_enabled:
        print("error: FLOW_EDITOR_BACKEND_URL is not set", file=sys.stderr)
        return 2
    raw = _read_json(path)
    structure = validate_structure(raw)
    if not structure.valid:
        for error in structure.errors:
            print(f"  - {error}", file=sys.stderr)
        return 1
    try:
        result = asyncio.run(_push(settings, agent_id, version, FlowDocument.from_dict(raw)))
    except FlowEditorError as e:
        for error in e.errors:
            print(f"  - {error}", file=sys.stderr)
        return 1
    if isinstance(result, dict) and "error" in result:
        print(f"Save failed: {result['error']}", file=sys.stderr)
        return 1
    print(f"Saved {path} for agent {agent_id} (version {version})")
    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="flow-editor",
        description="Validate, convert and compile conversation flows",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    validate_p = sub.add_parser("validate", help="Run both validator passes on a document")
    validate_p.add_argument("file")

    compile_p = sub.add_parser("compile", help="Generate the Python scaffold for a document")
    compile_p.add_argument("file")
    compile_p.add_argument("-o", "--output", help="write to this file instead of stdout")

    present_p = sub.add_parser("present", help="Print the canvas graph for a document")
    present_p.add_argument("file")

    example_p = sub.add_parser("example", help="Print a bundled example flow")
    example_p.add_argument("name", choices=sorted(EXAMPLES))
    example_p.add_argument("-o", "--output")

    pull_p = sub.add_parser("pull", help="Download an agent's flow from the backend")
    pull_p.add_argument("agent_id")
    pull_p.add_argument("--version", default="1", metavar="N")
    pull_p.add_argument("-o", "--output")

    push_p = sub.add_parser("push", help="Validate and upload a flow to the backend")
    push_p.add_argument("file")
    push_p.add_argument("agent_id")
    push_p.add_argument("--version", default="1", metavar="N")

    serve_p = sub.add_parser("serve", help="Run the HTTP tooling service")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=8000)
    serve_p.add_argument("--reload", action="store_true")

    return parser


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    settings = Settings.from_env()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.WARNING),
        format="%(levelname)s: %(message)s",
    )

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "validate":
        code = cmd_validate(args.file)
    elif args.command == "compile":
        code = cmd_compile(args.file, args.output)
    elif args.command == "present":
        code = cmd_present(args.file)
    elif args.command == "example":
        code = cmd_example(args.name, args.output)
    elif args.command == "pull":
        code = cmd_pull(args.agent_id, args.version, args.output)
    elif args.command == "push":
        code = cmd_push(args.file, args.agent_id, args.version)
    elif args.command == "serve":
        from flow_editor.api import serve
        serve(host=args.host, port=args.port, reload=args.reload)
        code = 0
    else:
        parser.print_help()
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
