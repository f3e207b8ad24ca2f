"""CLI entrypoint."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

import anyio

from study_flow.input_adaptors import FileInput, InputAdaptor, TextInput
from study_flow.orchestrator import Orchestrator
from study_flow.settings import Settings


async def run_flow_by_name(orch: Orchestrator, flow_name: str, input_adaptor: InputAdaptor) -> Any:
    return await orch.run(flow_name, input_adaptor)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="study-flow")
    parser.add_argument("--prompts-dir", action="append", default=[], help="Extra prompt directory")
    parser.add_argument("--list", action="store_true", help="List available flows and prompts")
    parser.add_argument("--flow", type=str)
    input_group = parser.add_mutually_exclusive_group()
    input_group.add_argument("--input", type=str, help="Path to a JSON or YAML input file")
    input_group.add_argument("--input-text", type=str, help="Raw JSON input")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings.prompt_dirs = [Path(p) for p in args.prompts_dir] + settings.prompt_dirs
    orch = Orchestrator.from_settings(settings)

    if args.list:
        print("flows:")
        for name in orch.list_flows():
            print(f"  {name}")
        print("prompts:")
        for name in orch.registry.list_prompts():
            print(f"  {name}")
        return

    if not args.flow:
        parser.error("--flow is required unless --list is given")
    input_adaptor: InputAdaptor
    if args.input_text is not None:
        input_adaptor = TextInput(args.input_text)
    elif args.input is not None:
        input_adaptor = FileInput(Path(args.input))
    else:
        parser.error("one of --input or --input-text is required")

    out = anyio.run(run_flow_by_name, orch, args.flow, input_adaptor)
    print(json.dumps(out, indent=2, ensure_ascii=False))
