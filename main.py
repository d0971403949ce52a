import asyncio
import logging
import sys

from tarot_session import config
from tarot_session.deck import default_provider
from tarot_session.identity import IdentityService, JsonFileStore
from tarot_session.llm import GeminiClient
from tarot_session.orchestrator import ReadingOrchestrator
from tarot_session.tarot_core import Session


class TerminalPrinter:
    """Prints streamed prefixes as they grow and each appended message once."""

    def __init__(self) -> None:
        self.printed = 0
        self.streamed = ""

    def __call__(self, session: Session) -> None:
        for m in session.messages[self.printed:]:
            if self.streamed:
                # the message is the text just streamed
                sys.stdout.write("\n\n")
                self.streamed = ""
            elif m.role == "assistant":
                print(f"🔮 {m.content}\n")
        self.printed = len(session.messages)

        text = session.streaming_text
        if text and text.startswith(self.streamed):
            if not self.streamed:
                sys.stdout.write("🔮 ")
            sys.stdout.write(text[len(self.streamed):])
            sys.stdout.flush()
            self.streamed = text


async def run(concern: str, name: str) -> None:
    identity = IdentityService(JsonFileStore(config.STATE_FILE), config.CARD_TYPE)
    visitor = identity.save_name(name) if name else identity.resolve()
    orch = ReadingOrchestrator(
        default_provider(config.CARD_TYPE),
        GeminiClient(),
        visitor,
        deck_id=config.CARD_TYPE,
        on_change=TerminalPrinter(),
    )
    if not await orch.load_deck():
        print("Card data could not be loaded.")
        return

    print(visitor.greeting(), "\n")
    await orch.start_reading(concern)
    if orch.followups_available:
        await orch.give_advice()
        print(orch.share_text())


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    for name in config.missing_settings():
        logging.warning("%s is not set", name)

    # Example: a three-card reading followed by one piece of advice
    asyncio.run(run(
        concern=" ".join(sys.argv[1:]) or "Should I change my career?",
        name="Demo",
    ))
