#!/usr/bin/env python
"""
Management entry point for the household ledger backend.

Defaults to development settings; set DJANGO_SETTINGS_MODULE to
core.settings.production or core.settings.test to override.
"""

import os
import sys


def main():
    """Run a Django management command with the ledger settings on the path."""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "core.settings.dev")

    try:
        from django.core.management import execute_from_command_line
    except ImportError as exc:
        raise ImportError(
            "Couldn't import Django. Install the project with "
            "`pip install -e .[test]` inside an activated virtual environment."
        ) from exc

    execute_from_command_line(sys.argv)


if __name__ == "__main__":
    main()
