"""Entry point for running GitArchitect as a module.

Usage:
    python -m gitarchitect [command] [options]

Example:
    python -m gitarchitect plan octocat/hello-world --goal "Add CI"
    python -m gitarchitect check
"""

from gitarchitect.cli import app

if __name__ == "__main__":
    app()
