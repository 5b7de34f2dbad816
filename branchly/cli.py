"""
Command-line interface for branchly.

Usage:
    branchly validate ./examples/treasure_hunt.json
    branchly test ./examples/treasure_hunt.json --max-paths 200 -v
    branchly analyze ./examples/treasure_hunt.json --json
    branchly play ./examples/treasure_hunt.json --state
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional, TextIO

from branchly.analysis import FlowAnalyzer, FlowValidator, run_path_tests
from branchly.core.errors import FlowError
from branchly.core.ir import FlowDefinition
from branchly.core.serialization import JsonSerializer
from branchly.engine import EngineOptions, ExecutionResult, FlowEngine


def load_flow(path: Path) -> FlowDefinition:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if not path.is_file():
        raise FileNotFoundError(f"Not a file: {path}")
    return JsonSerializer.load(path)


def cmd_validate(flow: FlowDefinition, args) -> int:
    result = FlowValidator().validate(flow)
    print(f"Flow: {flow.title or flow.id}")
    print(f"Status: {'VALID' if result.is_valid else 'INVALID'}")
    for error in result.errors:
        print(f"  error   {error.type}: {error.message}")
    for warning in result.warnings:
        print(f"  warning {warning.type}: {warning.message}")
    return 0 if result.is_valid else 1


def cmd_test(flow: FlowDefinition, args) -> int:
    run = run_path_tests(flow, max_steps=args.max_steps, max_paths=args.max_paths, verbose=args.verbose)
    print(run.text)
    return 0 if run.result.is_valid else 1


def cmd_analyze(flow: FlowDefinition, args) -> int:
    analysis = FlowAnalyzer().analyze(flow)
    if args.json:
        print(json.dumps(analysis.to_dict(), indent=2))
        return 0

    print(f"Flow: {flow.title or flow.id}")
    print(f"Score: {analysis.score}/100 ({'valid' if analysis.is_valid else 'invalid'})")
    s, p = analysis.structure, analysis.paths
    print(f"Nodes: {s.total_nodes} ({s.decision_nodes} decisions, {s.end_nodes} endings), max depth {s.max_depth}")
    print(f"Paths: {p.total_paths} explored, {p.completed_paths} completed, average length {p.average_path_length}")
    ux = analysis.user_experience
    print(f"Complexity: {ux.complexity}, estimated play time {ux.estimated_play_time}")
    if analysis.insights:
        print("")
        print("Insights:")
        for insight in analysis.insights:
            print(f"  [{insight.type}] {insight.title}: {insight.description}")
            if insight.suggestion and args.verbose:
                print(f"      -> {insight.suggestion}")
    return 0


def _show(result: ExecutionResult, show_state: bool, out: TextIO) -> None:
    node = result.node.node
    print("", file=out)
    print(f"== {node.title} ==", file=out)
    if node.content:
        print(node.content, file=out)
    if show_state:
        print(f"state: {json.dumps(result.state, sort_keys=True)}", file=out)
    for i, choice in enumerate(result.choices, 1):
        suffix = f" ({choice.disabled_reason})" if choice.disabled else ""
        print(f"  {i}. {choice.label}{suffix}", file=out)


def play(
    flow: FlowDefinition,
    show_disabled: bool = False,
    show_state: bool = False,
    input_fn: Optional[Callable[[str], str]] = None,
    out: Optional[TextIO] = None,
) -> int:
    """Interactive console player. ``b`` goes back, ``q`` quits."""
    input_fn = input_fn or input
    out = out or sys.stdout
    engine = FlowEngine(flow, EngineOptions(show_disabled_choices=show_disabled))
    engine.on_error(lambda data: print(f"warning: {data['error']}", file=sys.stderr))
    result = engine.start()

    while True:
        _show(result, show_state, out)
        if result.is_complete:
            print("The End.", file=out)
            return 0
        if not [c for c in result.choices if not c.disabled]:
            print("No available choices.", file=out)
            return 1

        try:
            answer = input_fn("> ").strip().lower()
        except EOFError:
            return 0

        if answer == "q":
            return 0
        if answer == "b":
            if engine.can_go_back():
                result = engine.go_back()
            else:
                print("Cannot go back.", file=out)
            continue
        if not answer.isdigit() or not 1 <= int(answer) <= len(result.choices):
            print(f"Enter a number between 1 and {len(result.choices)}, b or q.", file=out)
            continue

        choice = result.choices[int(answer) - 1]
        try:
            result = engine.next(choice.id)
        except FlowError as e:
            print(f"Error: {e}", file=out)


def cmd_play(flow: FlowDefinition, args) -> int:
    return play(flow, show_disabled=args.show_disabled, show_state=args.state)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="branchly",
        description="Validate, test, analyze and play branchly flow definitions.",
        epilog="Example: branchly play ./examples/treasure_hunt.json",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate", help="Check a flow for structural errors")
    validate.set_defaults(handler=cmd_validate)

    test = subparsers.add_parser("test", help="Explore every path through a flow")
    test.add_argument("--max-steps", type=int, default=100, help="Maximum steps per path (default: 100)")
    test.add_argument("--max-paths", type=int, default=1000, help="Maximum paths to explore (default: 1000)")
    test.set_defaults(handler=cmd_test)

    analyze = subparsers.add_parser("analyze", help="Score a flow and list improvement insights")
    analyze.add_argument("--json", action="store_true", help="Print the analysis as JSON")
    analyze.set_defaults(handler=cmd_analyze)

    play_parser = subparsers.add_parser("play", help="Play a flow interactively")
    play_parser.add_argument("--show-disabled", action="store_true", help="List choices whose condition is not met")
    play_parser.add_argument("--state", action="store_true", help="Print the state after every step")
    play_parser.set_defaults(handler=cmd_play)

    for sub in (validate, test, analyze, play_parser):
        sub.add_argument("input", type=Path, help="Flow definition JSON file")
        sub.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS, help="Verbose output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        flow = load_flow(args.input)
    except (OSError, FlowError) as e:
        print(f"Error loading file: {e}", file=sys.stderr)
        return 1

    try:
        return args.handler(flow, args)
    except FlowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
