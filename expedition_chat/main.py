"""CLI entry point for the Expedition Chat agent.

A terminal chat loop for trying the agent against the in-memory demo
backend.  For production, use the FastAPI server (expedition_chat/server.py).

Usage:
    python -m expedition_chat.main                  # web channel, anonymous
    python -m expedition_chat.main --whatsapp       # WhatsApp prompt and limits
    python -m expedition_chat.main --client-id 7    # personalised, with memory
    python -m expedition_chat.main --debug          # show HTTP and tool logs
"""

from __future__ import annotations

import argparse
import logging

from dotenv import load_dotenv

from expedition_chat.agent import ChatOrchestrator, ChatRequestParams
from expedition_chat.background import BackgroundTaskRunner
from expedition_chat.config import load_settings
from expedition_chat.memory import ClientProfile, InMemoryClientStore
from expedition_chat.tools.backend import InMemoryTravelBackend
from expedition_chat.tools.registry import build_tool_registry

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """WARNING by default, DEBUG when --debug is passed."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    if not debug:
        for name in ("httpx", "httpcore", "openai"):
            logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("expedition_chat").setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="CuratedAscents Expedition Architect CLI")
    parser.add_argument("--debug", action="store_true", help="Show all log messages")
    parser.add_argument("--whatsapp", action="store_true", help="Use the WhatsApp channel")
    parser.add_argument("--client-id", type=int, default=None, help="Chat as a known client")
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    settings = load_settings()
    if not settings.ai_configured:
        print("DEEPSEEK_API_KEY is not set. Add it to your environment or .env file.")
        return

    store = InMemoryClientStore()
    if args.client_id is not None:
        store.add_profile(ClientProfile(id=args.client_id))
    background = BackgroundTaskRunner()
    orchestrator = ChatOrchestrator(
        settings,
        build_tool_registry(InMemoryTravelBackend.with_demo_data()),
        client_store=store,
        background=background,
    )
    source = "whatsapp" if args.whatsapp else "web"

    print("\n" + "=" * 60)
    print("  CuratedAscents Expedition Architect - CLI Chat")
    print("=" * 60)
    print(f"  Channel: {source}")
    print("  Commands: 'quit' to exit, 'new' to clear the conversation.")
    print("=" * 60 + "\n")

    history: list[dict[str, str]] = []
    try:
        while True:
            try:
                user_input = input("You: ").strip()
            except (KeyboardInterrupt, EOFError):
                print("\n\nGoodbye!")
                break

            if not user_input:
                continue
            if user_input.lower() in ("exit", "quit", "q"):
                print("\nNamaste, and safe travels!")
                break
            if user_input.lower() == "new":
                history = []
                print("\n>> Conversation cleared.\n")
                continue

            turn = {"role": "user", "content": user_input}
            result = orchestrator.process_chat_message(
                ChatRequestParams(
                    messages=[turn],
                    conversation_history=list(history),
                    client_id=args.client_id,
                    source=source,
                )
            )
            if not result.success:
                print(f"\nArchitect: Sorry, something went wrong ({result.error}).\n")
                continue

            history += [turn, {"role": "assistant", "content": result.response}]
            print(f"\nArchitect: {result.response}\n")
    finally:
        background.shutdown(wait=True)


if __name__ == "__main__":
    main()
