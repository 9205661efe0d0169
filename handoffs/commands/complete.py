"""
hf complete - Mark plan requirements as complete.
"""

from handoffs.lib.config import HandoffConfig
from handoffs.lib.plan import count_done
from handoffs.workflow.consume import complete_requirements


def cmd_complete(args, config: HandoffConfig) -> int:
    parsed = complete_requirements(config, args.id, args.requirements)
    done = count_done(parsed.requirements)
    print(f"{args.id}: {done}/{len(parsed.requirements)} done, plan is {parsed.frontmatter.status}")
    return 0
