"""
hf list - List handoffs with their plan progress.
"""

from handoffs.lib.config import HandoffConfig
from handoffs.lib.loader import load_handoffs
from handoffs.lib.plan import count_done, load_plan, plan_path

MAX_TITLE = 40


def cmd_list(args, config: HandoffConfig) -> int:
    """List handoffs, one line each."""
    docs, errors = load_handoffs(config.handoffs_dir, exclude=config.generated_dirs)
    for error in errors:
        print(f"  [WARN] {error}")

    if not docs:
        print("Handoffs: none")
        return 0

    print("Handoffs")
    print("-" * 90)
    for doc in docs:
        progress = "-"
        path = plan_path(config.plans_dir, doc.handoff_id)
        if path.exists():
            plan = load_plan(path)
            progress = f"{plan.frontmatter.status} {count_done(plan.requirements)}/{len(plan.requirements)}"
        title = doc.title[:MAX_TITLE] + "..." if len(doc.title) > MAX_TITLE else doc.title
        print(f"  {doc.handoff_id:<32} {doc.frontmatter.direction:<9} {doc.status:<12} {progress:<16} {title}")
    return 0
