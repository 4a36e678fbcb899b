"""
StubTap Mock CLI

Command-line interface for the StubTap mock server.

Commands:
    serve       - Start the mock server with rules from a file
    validate    - Check a rule file
    push        - Send rules from a file to a running mock server

Examples:
    # Start mock server
    stubtap serve mocks.yaml --port 8080

    # Check rules before committing them
    stubtap validate mocks.yaml

    # Replace the rules of a running server
    stubtap push mocks.yaml --target http://127.0.0.1:8080 --replace
"""

import argparse
import logging
import sys

import httpx

from .mock import MockServer, MockConfig, MockRegistry, RuleLoader, RuleDecodeError, push_mocks
from .mock.rules import Exclude, ForcedError, RemainingUses


def _load_rules_or_exit(rules_file: str):
    try:
        return RuleLoader(rules_file).load()
    except (FileNotFoundError, RuleDecodeError) as e:
        print(f"❌ Failed to load rules: {e}")
        sys.exit(1)


def cmd_serve(args):
    """
    Start the mock server.

    Args:
        args: Parsed command-line arguments
    """
    print(f"🎭 StubTap Mock Server")
    print(f"   Rules file: {args.rules_file}")

    rules = _load_rules_or_exit(args.rules_file)

    config = MockConfig.from_yaml(args.config) if args.config else MockConfig()
    config.host = args.host or config.host
    config.port = args.port or config.port
    config.log_level = args.log_level or config.log_level
    config.admin_enabled = config.admin_enabled and not args.no_admin
    config.verbose_mode = config.verbose_mode or args.verbose

    logging.basicConfig(level=getattr(logging, config.log_level.upper()))

    if args.verbose:
        print(f"📋 Verbose mode enabled (detailed match logging)")

    server = MockServer(registry=MockRegistry(rules), config=config)

    # Start server (blocking)
    try:
        server.start()
    except KeyboardInterrupt:
        print("\n\n👋 Mock server stopped")


def cmd_validate(args):
    """
    Validate a rule file and summarize its rules.

    Args:
        args: Parsed command-line arguments
    """
    print(f"🔍 Validating {args.rules_file}")

    rules = _load_rules_or_exit(args.rules_file)

    excluded = sum(1 for r in rules if isinstance(r.outcome, Exclude))
    limited = sum(1 for r in rules if isinstance(r.consumption, RemainingUses))
    delayed = sum(1 for r in rules if r.delay)
    forced = sum(
        1 for r in rules
        if not isinstance(r.outcome, Exclude) and isinstance(r.outcome.response.body, ForcedError)
    )

    print(f"✅ {len(rules)} rule(s) OK")
    print(f"   Exclusions: {excluded}")
    print(f"   Limited use: {limited}")
    print(f"   Delayed: {delayed}")
    print(f"   Forced errors: {forced}")


def cmd_push(args):
    """
    Send rules to a running mock server.

    Args:
        args: Parsed command-line arguments
    """
    rules = _load_rules_or_exit(args.rules_file)

    try:
        result = push_mocks(args.target, rules, replace=args.replace, admin_prefix=args.admin_prefix)
    except httpx.HTTPError as e:
        print(f"❌ Failed to push rules: {e}")
        sys.exit(1)

    action = 'Replaced' if args.replace else 'Added'
    print(f"📤 {action} {result.get('count', len(rules))} rule(s) on {args.target} (total: {result.get('total')})")


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='stubtap',
        description="StubTap - rule-based HTTP mock server for tests and demos",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start mock server
  %(prog)s serve mocks.yaml --port 8080

  # Validate a rule file
  %(prog)s validate mocks.yaml

  # Push rules to a running server
  %(prog)s push mocks.json --target http://127.0.0.1:8080
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    serve_parser = subparsers.add_parser('serve', help='Start mock server')
    serve_parser.add_argument('rules_file', help='JSON or YAML rule file')
    serve_parser.add_argument('--config', help='YAML server config file')
    serve_parser.add_argument('--host', help='Host to bind (default: 127.0.0.1)')
    serve_parser.add_argument('-p', '--port', type=int, help='Port to bind (default: 8080)')
    serve_parser.add_argument('--log-level', choices=['debug', 'info', 'warning', 'error'],
                              help='Log level (default: info)')
    serve_parser.add_argument('--no-admin', action='store_true', help='Disable admin API')
    serve_parser.add_argument('--verbose', action='store_true', help='Show match information for each request')

    validate_parser = subparsers.add_parser('validate', help='Validate a rule file')
    validate_parser.add_argument('rules_file', help='JSON or YAML rule file')

    push_parser = subparsers.add_parser('push', help='Send rules to a running mock server')
    push_parser.add_argument('rules_file', help='JSON or YAML rule file')
    push_parser.add_argument('-t', '--target', required=True, help='Mock server base URL')
    push_parser.add_argument('--replace', action='store_true', help='Replace existing rules instead of adding')
    push_parser.add_argument('--admin-prefix', default='/__admin__', help='Admin API prefix (default: /__admin__)')

    # Parse arguments
    args = parser.parse_args(argv)

    # Dispatch to command handler
    if args.command == 'serve':
        cmd_serve(args)
    elif args.command == 'validate':
        cmd_validate(args)
    elif args.command == 'push':
        cmd_push(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == '__main__':
    main()
