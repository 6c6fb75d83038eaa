"""
llmwarden CLI: entry point for all operations.

Usage:
    llmwarden run                  # Operator + admission webhooks
    llmwarden controller           # Operator only
    llmwarden webhook              # Admission webhooks only
    llmwarden validate FILE...     # Check LLMAccess manifests offline
    llmwarden version              # Show version
"""

from __future__ import annotations

import argparse
import sys


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="llmwarden",
        description="llmwarden: declarative LLM credential access for Kubernetes workloads.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Run the operator and the webhook server")
    subparsers.add_parser("controller", help="Run the operator only")
    subparsers.add_parser("webhook", help="Run the admission webhook server only")

    validate_parser = subparsers.add_parser("validate", help="Validate LLMAccess manifests")
    validate_parser.add_argument("files", nargs="+", metavar="FILE", help="YAML manifest files")

    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from llmwarden import __version__

        print(f"llmwarden {__version__}")
        return 0

    if args.command == "run":
        return _cmd_run(controller=True, webhook=True)
    elif args.command == "controller":
        return _cmd_run(controller=True, webhook=False)
    elif args.command == "webhook":
        return _cmd_run(controller=False, webhook=True)
    elif args.command == "validate":
        return _cmd_validate(args)
    else:
        parser.print_help()
        return 0


def _cmd_run(*, controller: bool, webhook: bool) -> int:
    from llmwarden.daemon import run

    run(controller=controller, webhook=webhook)
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    import yaml

    from llmwarden.webhook.validator import AccessValidationError, AccessValidator

    validator = AccessValidator()
    failed = False
    checked = 0

    for path in args.files:
        try:
            with open(path) as f:
                documents = [d for d in yaml.safe_load_all(f) if d]
        except (OSError, yaml.YAMLError) as e:
            print(f"  ERROR  {path}: {e}", file=sys.stderr)
            failed = True
            continue

        for doc in documents:
            if not isinstance(doc, dict) or doc.get("kind") != "LLMAccess":
                continue
            checked += 1
            meta = doc.get("metadata") or {}
            ref = f"{meta.get('namespace', 'default')}/{meta.get('name', '?')}"
            try:
                warnings = validator.validate_create(doc)
            except AccessValidationError as e:
                failed = True
                print(f"  REJECT {path} {ref}: {e}")
                warnings = e.warnings
            else:
                print(f"  OK     {path} {ref}")
            for warning in warnings:
                print(f"  WARN   {path} {ref}: {warning}")

    print(f"\n{checked} LLMAccess manifest(s) checked")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
