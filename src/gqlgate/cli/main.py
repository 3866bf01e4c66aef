#!/usr/bin/env python3
"""
gqlgate CLI - Main entry point.

Usage:
    gqlgate hash <file>                                  # Print a document's identifier
    gqlgate persist <file>... --manifest persisted.yaml  # Add documents to a manifest
    gqlgate allow <id> --manifest persisted.yaml         # Allow (or --deny) a persisted query
    gqlgate serve app.main:app --config gqlgate.yaml     # Run a gateway with uvicorn
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from ..core.errors import DocumentSyntaxError
from ..core.registry import OperationDocument, document_identifier, read_manifest, write_manifest
from .config import CONFIG_PATH_ENV, load_config

DEFAULT_MANIFEST = "persisted.yaml"


def cmd_hash(args: argparse.Namespace) -> int:
    """Print the content identifier of a document."""
    path = Path(args.file)
    if not path.exists():
        print(f"Error: {path} not found.", file=sys.stderr)
        return 1

    print(document_identifier(path.read_text()))
    return 0


def cmd_persist(args: argparse.Namespace) -> int:
    """Add documents to a manifest file."""
    manifest_path = Path(args.manifest)
    manifest = read_manifest(manifest_path)

    for file in args.files:
        path = Path(file)
        if not path.exists():
            print(f"Error: {path} not found.", file=sys.stderr)
            return 1

        text = path.read_text()
        try:
            document = OperationDocument.parse(text)
        except DocumentSyntaxError as e:
            print(f"Error: {path} is not a valid document: {e.violations[0].message}", file=sys.stderr)
            return 1

        identifier = document.digest
        existing = manifest.get(identifier)
        allowed = args.allow or (existing is not None and existing["allowed"])
        manifest[identifier] = {"document": text, "allowed": allowed}
        print(f"{identifier}  {path}{'  (allowed)' if allowed else ''}")

    write_manifest(manifest_path, manifest)
    print(f"Wrote {len(manifest)} queries to {manifest_path}")
    return 0


def cmd_allow(args: argparse.Namespace) -> int:
    """Toggle the allow flag of a manifest entry."""
    manifest_path = Path(args.manifest)
    manifest = read_manifest(manifest_path)

    entry = manifest.get(args.id)
    if entry is None:
        print(f"Error: '{args.id}' not found in {manifest_path}.", file=sys.stderr)
        return 1

    entry["allowed"] = not args.deny
    write_manifest(manifest_path, manifest)
    print(f"{args.id} {'denied' if args.deny else 'allowed'}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run a gateway app with uvicorn."""
    import uvicorn

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: {config_path} not found.", file=sys.stderr)
            return 1
        # Validate now so a bad file fails before the server starts
        load_config(config_path)
        os.environ[CONFIG_PATH_ENV] = str(config_path)

    uvicorn.run(args.app, host=args.host, port=args.port, reload=args.reload)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gqlgate",
        description="gqlgate - schema-governed GraphQL gateway",
    )
    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # hash
    hash_parser = subparsers.add_parser("hash", help="Print the identifier of a document")
    hash_parser.add_argument("file", help="GraphQL document file")

    # persist
    persist_parser = subparsers.add_parser("persist", help="Add documents to a manifest")
    persist_parser.add_argument("files", nargs="+", help="GraphQL document files")
    persist_parser.add_argument("--manifest", "-m", default=DEFAULT_MANIFEST, help="Manifest file (YAML or .json)")
    persist_parser.add_argument("--allow", action="store_true", help="Mark the documents as allowed")

    # allow
    allow_parser = subparsers.add_parser("allow", help="Allow or deny a persisted query")
    allow_parser.add_argument("id", help="Persisted query identifier")
    allow_parser.add_argument("--manifest", "-m", default=DEFAULT_MANIFEST, help="Manifest file (YAML or .json)")
    allow_parser.add_argument("--deny", action="store_true", help="Remove from the allow-list")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run a gateway with uvicorn")
    serve_parser.add_argument("app", help="ASGI app import path, e.g. app.main:app")
    serve_parser.add_argument("--config", "-c", help="YAML settings file")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    serve_parser.add_argument("--port", "-p", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    return parser


def app(args: Optional[List[str]] = None) -> int:
    """Main CLI application."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 0

    commands = {
        "hash": cmd_hash,
        "persist": cmd_persist,
        "allow": cmd_allow,
        "serve": cmd_serve,
    }

    handler = commands.get(parsed.command)
    if handler:
        return handler(parsed)

    parser.print_help()
    return 1


def main() -> None:
    """Entry point for CLI."""
    sys.exit(app())


if __name__ == "__main__":
    main()
