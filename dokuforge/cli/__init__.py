"""dokuforge CLI — Typer-based command-line interface.

Provides the ``dokuforge`` command with subcommands for generating
identities, storing source versions, running the preview, certify and
compile stages, and verifying their outputs.

All output uses Rich for formatted terminal display.
"""
