"""
EduFed - Command Line Interface.

Provides a rich CLI for simulating training rounds, running one-off
rounds, validating configuration and serving the coordination API.

Usage:
    edufed simulate --rounds 10 --nodes 20
    edufed validate coordinator.yaml
    edufed generate --output coordinator.yaml
"""

from edufed.cli.main import app, main

__all__ = ["app", "main"]
