"""
A simple CLI for preparing the group store.
"""

import sys


def main():
    try:
        setup = sys.argv[1] == "setup"
    except IndexError:
        print("Only supported command is cohorts setup")
        exit(1)

    if setup:
        from cohorts.config.settings import Settings

        settings = Settings()
        settings.sync_manager().create_all()

        print(f"Created group tables in {settings.database_type} database")
        exit(0)

    print(f"Unknown command {sys.argv[1]}, only supported command is cohorts setup")
    exit(1)
