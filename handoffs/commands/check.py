"""
hf check - Validate every handoff document.
"""

from handoffs.lib.config import HandoffConfig
from handoffs.lib.loader import load_handoffs
from handoffs.lib.validate import format_errors, validate_corpus


def cmd_check(args, config: HandoffConfig) -> int:
    """Validate the corpus. Exit 1 if any document has errors."""
    docs, errors = load_handoffs(config.handoffs_dir, exclude=config.generated_dirs)
    errors = errors + validate_corpus(docs, config.repo)

    total = len(docs) + len({e.file for e in errors if e.code == "malformed_frontmatter"})
    if not errors:
        print(f"{total} handoffs checked, no problems")
        return 0

    print(f"{total} handoffs checked, {len(errors)} problems:")
    for line in format_errors(errors):
        print(line)
    return 1
