# main.py
import logging
import uuid

import config
import services.llm_service as llm_service
from controllers.chat_controller import ChatController
from helpers.logging_helpers import setup_logging
from services.graph_client import graph_client
from services.state_service import state_sweeper

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit"}


def main() -> None:
    """Main function to start the console HR assistant."""
    setup_logging()
    logger.info("Starting %s HR assistant...", config.ASSISTANT_NAME)

    if not llm_service.get_llm_model():
        logger.error("LLM model not initialized. Please check the Gemini API key. Exiting.")
        return
    if not graph_client.is_configured():
        logger.warning("Microsoft Graph credentials missing; calendar and email actions will fail.")
    if config.SKIP_SENDING_EMAILS:
        logger.info("SKIP_SENDING_EMAILS is on; emails will be logged, not sent.")

    controller = ChatController()
    state_sweeper.start()
    conversation_id = f"console-{uuid.uuid4().hex[:8]}"
    print(f"{config.ASSISTANT_NAME} is ready. Type 'exit' to quit, '!reset' to start over.")

    try:
        while True:
            try:
                text = input("> ").strip()
            except EOFError:
                break
            if text.lower() in EXIT_COMMANDS:
                break
            controller.process_input({
                "conversation_id": conversation_id,
                "text": text,
                "manager_email": config.MANAGER_EMAIL,
                "manager_name": config.MANAGER_NAME,
                "timezone": config.DEFAULT_TIMEZONE,
            })
    except KeyboardInterrupt:
        pass
    finally:
        state_sweeper.stop(timeout=1)

    logger.info("%s HR assistant stopped.", config.ASSISTANT_NAME)


if __name__ == '__main__':
    main()
