#!/usr/bin/env python3
"""
Takeover Agent Main Script.

Watches the Messages database and, when you have gone quiet in a
conversation where someone is waiting on you, asks in your note-to-self
thread whether it should take over. Reply "yes" to let it send a few
messages in your style, or "no" to leave the conversation alone. Sending
any message yourself hands control straight back.

Usage:
    python main.py

Requires ANTHROPIC_API_KEY and USER_IDENTIFIER (your own phone number or
iMessage email), either in the environment or in a .env file.
"""

import asyncio
import logging
import signal
import sys

from src.utils.load_env import load_env
from src.utils.logger_config import setup_logging, get_logger
from src.takeover.agent import TakeoverAgent
from src.takeover.config import load_agent_config
from src.message_maker.llm_client import LLMClient
from src.messaging.config import load_config
from src.messaging.exceptions import MessagingError
from src.messaging.transport import IMessageTransport

logger = get_logger(__name__)


async def run_agent(agent: TakeoverAgent) -> None:
    """Run the agent until the event stream ends or a stop signal arrives"""
    loop = asyncio.get_running_loop()
    run_task = asyncio.create_task(agent.run())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, run_task.cancel)

    try:
        await run_task
    except asyncio.CancelledError:
        logger.info("Received stop signal")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


def main() -> int:
    """Main function: load settings, build collaborators and run"""
    load_env()
    agent_config = load_agent_config()
    setup_logging(logging.DEBUG if agent_config.debug else logging.INFO)

    if not agent_config.user_identifier:
        logger.error("USER_IDENTIFIER must be set to your own phone number or iMessage email")
        return 1

    try:
        generator = LLMClient()
        transport = IMessageTransport(load_config(), agent_config.user_identifier)
    except (ValueError, MessagingError) as e:
        logger.error(f"Failed to initialize: {e}")
        return 1

    agent = TakeoverAgent(agent_config, transport, generator)

    try:
        asyncio.run(run_agent(agent))
    finally:
        transport.close()
        status = agent.get_status()
        for summary in status["conversations"]:
            logger.info(
                f"{summary['thread_id']} ({summary['counterpart_name']}): "
                f"{summary['state']}, {summary['turns_sent_this_session']} turns"
            )
        logger.info(f"Processed {status['events_processed']} message events. Goodbye!")

    return 0


if __name__ == "__main__":
    sys.exit(main())
