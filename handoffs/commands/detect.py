"""
hf detect - Report handoffs that are new or changed since the last run.
"""

from handoffs.lib.config import HandoffConfig
from handoffs.lib.loader import load_handoffs
from handoffs.lib.state import FileStateStore, detect_changes
from handoffs.lib.validate import valid_documents, validate_corpus


def cmd_detect(args, config: HandoffConfig) -> int:
    """Compare the corpus against the state file and update it."""
    docs, errors = load_handoffs(config.handoffs_dir, exclude=config.generated_dirs)
    errors = errors + validate_corpus(docs, config.repo)
    docs = valid_documents(docs, errors)
    if errors:
        print(f"  [WARN] Skipping {len({e.file for e in errors})} invalid files (run 'hf check')")

    result = detect_changes(docs, FileStateStore(config.state_file))

    print(f"Last run: {result.previous_run or 'never'}")
    if result.new:
        print(f"New or changed ({len(result.new)}):")
        for doc in result.new:
            print(f"  {doc.handoff_id:<40} {doc.status:<12} {doc.title}")
    else:
        print("No new handoffs")
    if result.removed:
        print(f"Removed ({len(result.removed)}):")
        for handoff_id in result.removed:
            print(f"  {handoff_id}")
    return 0
