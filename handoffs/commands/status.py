"""
hf plan-status / hf status - Move a plan or a handoff by hand.
"""

from handoffs.lib.config import HandoffConfig
from handoffs.lib.validate import format_errors
from handoffs.workflow.consume import set_handoff_status, set_plan_status


def cmd_plan_status(args, config: HandoffConfig) -> int:
    set_plan_status(config, args.id, args.status, reason=args.reason or "")
    print(f"Plan for {args.id} is now {args.status}")
    return 0


def cmd_status(args, config: HandoffConfig) -> int:
    errors = set_handoff_status(config, args.id, args.status)
    if errors:
        print(f"ERROR: Cannot set {args.id} to {args.status}")
        for line in format_errors(errors):
            print(line)
        return 1
    print(f"Handoff {args.id} is now {args.status}")
    return 0
