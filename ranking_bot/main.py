from __future__ import annotations

import sys
from pathlib import Path


def _bootstrap_paths() -> Path:
    """Ensure the project root is available on sys.path."""
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))
    return project_root


def main() -> None:
    """Launch the ranking bot directly via its runner."""
    _bootstrap_paths()

    # Import the package runner explicitly to avoid self-import recursion
    from ranking_bot.runner import run_ranking_bot

    run_ranking_bot()


if __name__ == "__main__":
    main()
