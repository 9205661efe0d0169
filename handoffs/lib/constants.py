"""Shared constants for the handoff engine."""

import re

# Handoff ID validation: NNN-slug
HANDOFF_ID_PATTERN = re.compile(r'^\d{3}-[a-z][a-z0-9-]*$')

HANDOFF_STATUSES = ["new", "acknowledged", "in_progress", "done", "blocked"]
PLAN_STATUSES = ["pending", "in_progress", "testing", "review", "done", "blocked"]
DIRECTIONS = ["incoming", "outgoing"]

STATE_VERSION = 1
PLAN_FORMAT_VERSION = 1

PLAN_SUFFIX = ".plan.md"
REPORT_SUFFIX = ".report.md"
