"""
hf plan - Create a consumption plan for a handoff.
"""

from handoffs.lib.config import HandoffConfig
from handoffs.workflow.consume import load_corpus_handoff, start_consumption


def cmd_plan(args, config: HandoffConfig) -> int:
    """Extract requirements, write the plan, and mark the handoff in_progress."""
    doc = load_corpus_handoff(config, args.id)
    plan, path = start_consumption(config, doc)

    print(f"Created plan {path}")
    print(f"  {len(plan.requirements)} requirements"
          + (" (breaking change)" if plan.frontmatter.breaking_change else ""))
    for req in plan.requirements:
        print(f"  {req.id}  p{req.priority}  {req.category:<11} {req.description}")
    return 0
