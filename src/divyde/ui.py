"""Interactive UI components for picking friends."""

import logging
from typing import Any

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .models import Friend

logger = logging.getLogger(__name__)


def friend_label(friend: Friend, duplicate: bool = False) -> str:
    """Display label for a friend; duplicate names get a short ID suffix."""
    return f"{friend.name} ({friend.id[:6]})" if duplicate else friend.name


class FriendCompleter(Completer):
    """Fuzzy search completer for friends."""

    def __init__(self, friends: list[Friend]):
        """Initialize the completer with the available friends."""
        self.friends = friends

        names = [friend.name for friend in friends]
        self.searchable = []
        self.label_to_id = {}
        for friend in friends:
            label = friend_label(friend, duplicate=names.count(friend.name) > 1)
            self.searchable.append((friend.id, label))
            self.label_to_id[label] = friend.id

    def get_completions(self, document: Document, complete_event: Any):
        """Get fuzzy-matched completions."""
        query = document.text.lower()

        for _friend_id, label in self.searchable:
            if not query:
                yield Completion(text=label, start_position=0, display=label)
            elif fuzzy_match(query, label.lower()):
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )


def fuzzy_match(query: str, text: str) -> bool:
    """
    Fuzzy match: all characters in query must appear in order in text.

    Example:
        query="aln" matches "alex chen"
    """
    query_idx = 0
    for char in text:
        if query_idx < len(query) and char == query[query_idx]:
            query_idx += 1
    return query_idx == len(query)


def select_friends_interactive(friends: list[Friend]) -> list[str]:
    """
    Interactive multi-friend selection with fuzzy search.

    Each accepted name is added to the selection; an empty line finishes.

    Args:
        friends: Friends to choose from

    Returns:
        Selected friend IDs in the order picked (empty if cancelled)
    """
    if not friends:
        print("\n⚠️  No friends yet. Add one with: divyde add-friend NAME")
        return []

    print("\n👥 Split with which friends?")
    print("   Type to search, Enter to add, empty line to finish, Ctrl+C to cancel\n")

    completer = FriendCompleter(friends)
    session: PromptSession[str] = PromptSession(completer=completer)
    selected: list[str] = []

    try:
        while True:
            result = session.prompt("Friend: ", complete_while_typing=True).strip()

            if not result:
                return selected

            friend_id = completer.label_to_id.get(result)
            if friend_id is None:
                print("❌ Unknown friend. Pick a name from the list (Tab completes).")
                continue
            if friend_id in selected:
                print("   Already selected.")
                continue

            selected.append(friend_id)
            logger.debug(f"User selected friend {friend_id}")
            print(f"   ✓ {result} ({len(selected)} selected)")

    except KeyboardInterrupt:
        print("\n⏭️  Cancelled")
        return []
    except EOFError:
        return selected
