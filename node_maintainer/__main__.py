"""Allow running as ``python -m node_maintainer``."""

from node_maintainer.cli import app

if __name__ == "__main__":
    app()
