"""
hf close / hf block - Finish a consumption, either way.
"""

from handoffs.lib.config import HandoffConfig
from handoffs.workflow.closure import VerificationFailed, block_handoff, close_handoff


def cmd_close(args, config: HandoffConfig) -> int:
    """Run verification and close the handoff."""
    try:
        result = close_handoff(config, args.id)
    except VerificationFailed as e:
        print(f"ERROR: {e}")
        for r in e.results:
            status = "ok" if r.passed else ("TIMEOUT" if r.timed_out else "FAIL")
            print(f"  [{status}] {r.name}: {r.command}")
            if not r.passed and r.output:
                for line in r.output.splitlines()[-10:]:
                    print(f"      {line}")
        return 1

    for r in result.verification:
        print(f"  [ok] {r.name}: {r.command}")
    print(f"Closed {args.id}")
    print(f"  Report: {result.report_path}")
    if result.report.related_prs:
        print(f"  PRs: {', '.join(result.report.related_prs)}")
    return 0


def cmd_block(args, config: HandoffConfig) -> int:
    """Block the handoff and write a blocker handoff back to the sender."""
    result = block_handoff(config, args.id, args.reason)
    print(f"Blocked {args.id}")
    print(f"  Blocker handoff: {result.blocker_path}")
    print(f"  Report: {result.report_path}")
    return 0
