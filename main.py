#!/usr/bin/env python3
"""
botauth - chat-bot command authorization.

Runs the SSO callback server, or evaluates a single authorization decision
against the configured rosters, LDAP directory and SSO settings.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "info").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

#
# NOTE: Keep botauth imports lazy (inside functions) so `--help` does not need
# the server or LDAP dependencies.
#


async def check_command(identity: str, command_id: str) -> dict:
    """Evaluate one decision and return it as a JSON-friendly dict."""
    from botauth.authz.decision import Authorizer, build_context
    from botauth.authz.policy import classify

    ctx = await build_context()
    try:
        decision = await Authorizer(ctx).decide(identity, command_id)
    finally:
        await ctx.directory.close()
    return {
        "identity": identity,
        "command": command_id,
        "tier": classify(command_id),
        "allowed": decision.allowed,
        "reason": decision.reason,
        "login_url": decision.login_url,
    }


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Authorize chat-bot commands against rosters, LDAP groups and SSO",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the SSO login/callback server
  python main.py --serve --port 8080

  # Check whether a user may run a command
  python main.py --check alice@example.com bluemix.app.remove
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the SSO login redirect/callback HTTP server")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")
    parser.add_argument(
        "--check",
        nargs=2,
        metavar=("EMAIL", "COMMAND"),
        help="Print the authorization decision for EMAIL running COMMAND",
    )

    args = parser.parse_args()

    try:
        if args.serve:
            from botauth.api.server import run as run_server

            run_server(host=args.host, port=args.port)
            return

        if args.check:
            identity, command_id = args.check
            result = asyncio.run(check_command(identity, command_id))
            print(json.dumps(result, indent=2, sort_keys=False))
            if not result["allowed"]:
                sys.exit(1)
            return

        parser.print_help()

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
