#!/usr/bin/env python
"""Command-line entry point for the workflow service (migrations, seeding, sweeps)."""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hms.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:
        raise ImportError("Django is not installed in this environment") from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
