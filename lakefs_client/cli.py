"""CLI entry point for the lakeFS actions client.

Handles argument parsing and dispatches to one actions API call, printing
the decoded result as JSON on stdout.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel

from lakefs_client.actions_api import ActionsApi
from lakefs_client.config_loader import ConfigError, load_client_config
from lakefs_client.errors import ClientError
from lakefs_client.executor import ApiClient
from lakefs_client.models import ClientConfig


MAX_PAGE_AMOUNT = 1000


def page_amount(value: str) -> int:
    """Parse --amount: a page size between 1 and the server's page limit.

    Raises:
        argparse.ArgumentTypeError: If value is not an integer in range.
    """
    if not (value.isascii() and value.isdigit()):
        raise argparse.ArgumentTypeError(f"amount must be a whole number, got '{value}'")
    amount = int(value)
    if not 1 <= amount <= MAX_PAGE_AMOUNT:
        raise argparse.ArgumentTypeError(
            f"amount must be between 1 and {MAX_PAGE_AMOUNT}, got {amount}"
        )
    return amount


@dataclass
class CommonArgs:
    """Options shared by every subcommand."""

    config: Path | None
    host: str | None
    verbose: bool


@dataclass
class GetRunArgs:
    """Parsed arguments for get-run."""

    common: CommonArgs
    repository: str
    run_id: str


@dataclass
class ListRunsArgs:
    """Parsed arguments for list-runs."""

    common: CommonArgs
    repository: str
    after: str | None
    amount: int | None
    branch: str | None
    commit: str | None


@dataclass
class ListHooksArgs:
    """Parsed arguments for list-hooks."""

    common: CommonArgs
    repository: str
    run_id: str
    after: str | None
    amount: int | None


@dataclass
class HookOutputArgs:
    """Parsed arguments for hook-output."""

    common: CommonArgs
    repository: str
    run_id: str
    hook_run_id: str
    output: Path | None


CommandArgs = GetRunArgs | ListRunsArgs | ListHooksArgs | HookOutputArgs


def _add_pagination(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--after", default=None, help="Return items after this offset")
    parser.add_argument(
        "--amount", type=page_amount, default=None, help="How many items to return"
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per actions operation."""
    parser = argparse.ArgumentParser(
        prog="lakefs-actions",
        description="Inspect lakeFS action runs and hook output.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to client config YAML (supports ${ENV_VAR} substitution)",
    )
    parser.add_argument(
        "--host", default=None, help="API base URL, overrides the config file"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log requests to stderr"
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Operation")

    get_run = subparsers.add_parser("get-run", help="Show one action run")
    get_run.add_argument("repository")
    get_run.add_argument("run_id")

    list_runs = subparsers.add_parser("list-runs", help="List action runs of a repository")
    list_runs.add_argument("repository")
    _add_pagination(list_runs)
    list_runs.add_argument("--branch", default=None, help="Only runs on this branch")
    list_runs.add_argument("--commit", default=None, help="Only runs for this commit")

    list_hooks = subparsers.add_parser("list-hooks", help="List hooks executed by a run")
    list_hooks.add_argument("repository")
    list_hooks.add_argument("run_id")
    _add_pagination(list_hooks)

    hook_output = subparsers.add_parser("hook-output", help="Print the output of a hook run")
    hook_output.add_argument("repository")
    hook_output.add_argument("run_id")
    hook_output.add_argument("hook_run_id")
    hook_output.add_argument(
        "--output", "-o", type=Path, default=None, help="Write output to a file instead of stdout"
    )

    return parser


def parse_args(args: list[str] | None = None) -> CommandArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)
    common = CommonArgs(config=namespace.config, host=namespace.host, verbose=namespace.verbose)

    if namespace.command == "get-run":
        return GetRunArgs(common=common, repository=namespace.repository, run_id=namespace.run_id)
    elif namespace.command == "list-runs":
        return ListRunsArgs(
            common=common,
            repository=namespace.repository,
            after=namespace.after,
            amount=namespace.amount,
            branch=namespace.branch,
            commit=namespace.commit,
        )
    elif namespace.command == "list-hooks":
        return ListHooksArgs(
            common=common,
            repository=namespace.repository,
            run_id=namespace.run_id,
            after=namespace.after,
            amount=namespace.amount,
        )
    elif namespace.command == "hook-output":
        return HookOutputArgs(
            common=common,
            repository=namespace.repository,
            run_id=namespace.run_id,
            hook_run_id=namespace.hook_run_id,
            output=namespace.output,
        )
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def load_config(common: CommonArgs) -> ClientConfig:
    """Load the config file (if any) and apply command-line overrides."""
    config = load_client_config(common.config) if common.config else ClientConfig()
    if common.host:
        config = config.model_copy(update={"host": common.host.rstrip("/")})
    return config


def _print_json(data: object) -> None:
    if isinstance(data, BaseModel):
        print(data.model_dump_json(indent=2, exclude_none=True))
    else:
        print(json.dumps(data, indent=2))


def run_command(args: CommandArgs, api: ActionsApi) -> int:
    """Run one parsed command against the API."""
    if isinstance(args, GetRunArgs):
        _print_json(api.get_run(args.repository, args.run_id))
    elif isinstance(args, ListRunsArgs):
        _print_json(api.list_repository_runs(
            args.repository,
            after=args.after,
            amount=args.amount,
            branch=args.branch,
            commit=args.commit,
        ))
    elif isinstance(args, ListHooksArgs):
        _print_json(api.list_run_hooks(
            args.repository, args.run_id, after=args.after, amount=args.amount
        ))
    else:
        output = api.get_run_hook_output(args.repository, args.run_id, args.hook_run_id)
        if args.output is not None:
            args.output.write_bytes(output)
        else:
            sys.stdout.write(output.decode("utf-8", errors="replace"))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(argv)

        if parsed.common.verbose:
            logging.basicConfig(
                level=logging.DEBUG,
                format="%(asctime)s %(levelname)s %(name)s: %(message)s",
                stream=sys.stderr,
            )

        try:
            config = load_config(parsed.common)
        except ConfigError as e:
            print(f"Error loading config: {e}", file=sys.stderr)
            return 1

        with ApiClient(config) as client:
            try:
                return run_command(parsed, ActionsApi(client))
            except ClientError as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
