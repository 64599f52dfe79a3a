"""Tablemaster CI Pipeline - Dagger Module.

Quality gate for the client packages: lint, type check and unit tests,
each in a fresh Python container.

Usage:
    dagger call check --source=.             # Full validation
    dagger call check --source=. --json-output
    dagger call test --source=.              # Tests only
"""

from .main import TablemasterPipeline as TablemasterPipeline
