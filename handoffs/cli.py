#!/usr/bin/env python3
"""Handoff engine CLI entrypoint."""

import sys
import argparse
import logging
from pathlib import Path

from handoffs.lib.config import load_config
from handoffs.lib.types import HandoffError
from handoffs.commands import check as cmd_check_module
from handoffs.commands import detect as cmd_detect_module
from handoffs.commands import list as cmd_list_module
from handoffs.commands import plan as cmd_plan_module
from handoffs.commands import complete as cmd_complete_module
from handoffs.commands import status as cmd_status_module
from handoffs.commands import close as cmd_close_module


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def run_command(func, args) -> int:
    """Load config for --root and run one subcommand, mapping errors to exit codes."""
    root = Path(args.root)
    if not root.is_dir():
        print(f"ERROR: Repository root '{root}' is not a directory")
        return 2

    config = load_config(root)
    try:
        return func(args, config)
    except HandoffError as e:
        print(f"ERROR: {e}")
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='hf', description='Cross-repo handoff lifecycle')
    parser.add_argument('--root', default='.', help='Repository root (default: current directory)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Log state changes')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # hf check
    p_check = subparsers.add_parser('check', help='Validate all handoff documents')
    p_check.set_defaults(func=cmd_check_module.cmd_check)

    # hf detect
    p_detect = subparsers.add_parser('detect', help='Show handoffs new since the last run')
    p_detect.set_defaults(func=cmd_detect_module.cmd_detect)

    # hf list
    p_list = subparsers.add_parser('list', help='List handoffs and plan progress')
    p_list.set_defaults(func=cmd_list_module.cmd_list)

    # hf plan
    p_plan = subparsers.add_parser('plan', help='Create a consumption plan')
    p_plan.add_argument('id', help='Handoff ID (e.g. 031-add-route)')
    p_plan.set_defaults(func=cmd_plan_module.cmd_plan)

    # hf complete
    p_complete = subparsers.add_parser('complete', help='Mark requirements complete')
    p_complete.add_argument('id', help='Handoff ID')
    p_complete.add_argument('requirements', nargs='+', metavar='REQ', help='Requirement IDs (e.g. REQ-001)')
    p_complete.set_defaults(func=cmd_complete_module.cmd_complete)

    # hf plan-status
    p_plan_status = subparsers.add_parser('plan-status', help='Move a plan to another status')
    p_plan_status.add_argument('id', help='Handoff ID')
    p_plan_status.add_argument('status', help='Target plan status')
    p_plan_status.add_argument('--reason', '-r', help='Reason recorded in the log')
    p_plan_status.set_defaults(func=cmd_status_module.cmd_plan_status)

    # hf status
    p_status = subparsers.add_parser('status', help='Move a handoff to another status')
    p_status.add_argument('id', help='Handoff ID')
    p_status.add_argument('status', help='Target handoff status')
    p_status.set_defaults(func=cmd_status_module.cmd_status)

    # hf close
    p_close = subparsers.add_parser('close', help='Verify, report and close a handoff')
    p_close.add_argument('id', help='Handoff ID')
    p_close.set_defaults(func=cmd_close_module.cmd_close)

    # hf block
    p_block = subparsers.add_parser('block', help='Block a handoff and notify the sender')
    p_block.add_argument('id', help='Handoff ID')
    p_block.add_argument('--reason', '-r', required=True, help='What is blocking consumption')
    p_block.set_defaults(func=cmd_close_module.cmd_block)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    return run_command(args.func, args)


if __name__ == '__main__':
    sys.exit(main())
