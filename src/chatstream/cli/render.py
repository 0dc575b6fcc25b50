"""Terminal rendering of a conversation as it streams in."""

from rich.console import Console
from rich.markup import escape

from ..chat import ConversationState, Sender


class StreamPrinter:
    """Store observer that prints answers to the console as they grow.

    Only the text added since the previous snapshot is written, so tokens
    appear one after another on the same line.
    """

    def __init__(self, console: Console) -> None:
        self.console = console
        self._printed: dict[str, int] = {}
        self._labelled: set[str] = set()

    def __call__(self, state: ConversationState) -> None:
        if not state.transcript:
            # Conversation was reset
            self._printed.clear()
            self._labelled.clear()
            return

        for message in state.messages_from(Sender.ASSISTANT):
            if message.id not in self._printed:
                self._printed[message.id] = 0
                self.console.print("[bold green]Assistant:[/] ", end="")

            if message.model and message.id not in self._labelled:
                self._labelled.add(message.id)
                self.console.print(f"[dim]\\[{escape(message.model)}][/] ", end="")

            printed = self._printed[message.id]
            if len(message.text) > printed:
                self.console.print(
                    message.text[printed:], end="", markup=False, highlight=False, soft_wrap=True
                )
                self._printed[message.id] = len(message.text)
