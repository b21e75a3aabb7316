import argparse
import asyncio
import sys
from typing import List, Optional

from wagpt.auth.credential_store import MultiFileCredentialStore
from wagpt.bot.relay_controller import RelayController
from wagpt.config import (
    AUTH_DIR,
    BATCH_POLICIES,
    BATCH_POLICY,
    EXIT_LOGGED_OUT,
    EXIT_MISSING_API_KEY,
    GATEWAY_URL,
    MODEL,
    RECONNECT_DELAY_SECONDS,
    logger,
)
from wagpt.services.gateway_transport import GatewayTransport
from wagpt.services.openai_client import MissingAPIKeyError, OpenAIClient
from wagpt.ui.qr_renderer import QRRenderer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="WhatsApp bot that answers incoming messages with OpenAI"
    )
    parser.add_argument(
        "--auth-dir",
        type=str,
        default=AUTH_DIR,
        help="Directory holding the WhatsApp session credentials",
    )
    parser.add_argument(
        "--gateway-url",
        type=str,
        default=GATEWAY_URL,
        help="WebSocket URL of the WhatsApp gateway",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=MODEL,
        help="OpenAI model used for replies",
    )
    parser.add_argument(
        "--reconnect-delay",
        type=float,
        default=RECONNECT_DELAY_SECONDS,
        help="Seconds to wait before reconnecting (0 = immediately)",
    )
    parser.add_argument(
        "--batch-policy",
        choices=BATCH_POLICIES,
        default=BATCH_POLICY,
        help="Which messages of a delivered batch get a reply",
    )
    parser.add_argument(
        "--exit-on-logout",
        action="store_true",
        help="Exit with status 2 after a logout instead of idling",
    )
    return parser


async def idle_forever() -> None:
    """Keep the process alive after the session has ended."""
    await asyncio.Event().wait()


async def serve(controller: RelayController, exit_on_logout: bool) -> None:
    await controller.run()
    if exit_on_logout:
        return
    logger.info("Session ended. Idling until stopped (Ctrl-C).")
    await idle_forever()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)

    # Fail before touching the network
    try:
        ai_client = OpenAIClient(model=args.model)
    except MissingAPIKeyError as e:
        logger.error("%s", e)
        sys.exit(EXIT_MISSING_API_KEY)

    credential_store = MultiFileCredentialStore(args.auth_dir)

    def transport_factory(auth_state):
        return GatewayTransport(args.gateway_url, auth_state)

    controller = RelayController(
        credential_store,
        ai_client,
        transport_factory,
        qr_renderer=QRRenderer(),
        reconnect_delay=args.reconnect_delay,
        batch_policy=args.batch_policy,
    )

    try:
        asyncio.run(serve(controller, args.exit_on_logout))
    except KeyboardInterrupt:
        logger.info("Stopping.")
        return

    if args.exit_on_logout:
        sys.exit(EXIT_LOGGED_OUT)


if __name__ == "__main__":
    main()
