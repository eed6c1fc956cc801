"""Command-line tools for citebase.

``python -m src.cli`` runs :func:`src.cli.citebase.main`, which offers the
``ingest``, ``query`` and ``status`` subcommands.  Arguments are parsed
with argparse; the application is built once per invocation through
:func:`src.main.build_application`.
"""
