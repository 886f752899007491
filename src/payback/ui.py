"""Interactive UI components for import conflict resolution."""

import logging
from typing import Any
from uuid import UUID

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .importer import CreateNew, ImportConflict, ImportResolution, LinkToExisting

logger = logging.getLogger(__name__)

CREATE_NEW_CHOICE = "Create new friend"


def _candidate_label(index: int, conflict: ImportConflict) -> str:
    friend = conflict.candidates[index]
    label = f"Link to {friend.name}"
    if friend.has_linked_account and friend.linked_account_email:
        label += f" <{friend.linked_account_email}>"
    if len(conflict.candidates) > 1:
        label += f" [{str(friend.member_id)[:8]}]"
    return label


class ResolutionCompleter(Completer):
    """Completer over the choices available for one conflict."""

    def __init__(self, conflict: ImportConflict):
        """Initialize the completer with the conflict's choices."""
        self.choices: dict[str, ImportResolution] = {}
        for idx, friend in enumerate(conflict.candidates):
            self.choices[_candidate_label(idx, conflict)] = LinkToExisting(
                friend.member_id
            )
        self.choices[CREATE_NEW_CHOICE] = CreateNew()

    def get_completions(self, document: Document, complete_event: Any):
        """Get substring-matched completions."""
        query = document.text.lower()
        for label in self.choices:
            if query in label.lower():
                yield Completion(
                    text=label,
                    start_position=-len(document.text),
                    display=label,
                )


def resolve_conflicts_interactive(
    conflicts: tuple[ImportConflict, ...],
) -> dict[UUID, ImportResolution] | None:
    """
    Ask the user how to resolve each import conflict.

    Choices already made for a name are reused for later conflicts with the
    same name.

    Args:
        conflicts: Conflicts reported by the importer

    Returns:
        Resolutions keyed by imported member id, or None if cancelled
    """
    resolutions: dict[UUID, ImportResolution] = {}
    by_name: dict[str, ImportResolution] = {}

    try:
        for conflict in conflicts:
            if conflict.import_name in by_name:
                resolutions[conflict.import_member_id] = by_name[conflict.import_name]
                continue

            print(f"\n👥 '{conflict.import_name}' matches an existing friend")
            print("   Type to search, press Tab to complete, Enter to confirm\n")

            completer = ResolutionCompleter(conflict)
            session: PromptSession[str] = PromptSession(completer=completer)
            default_text = _candidate_label(0, conflict)

            while True:
                result = session.prompt(
                    "Resolution: ",
                    default=default_text,
                    complete_while_typing=True,
                )
                resolution = completer.choices.get(result)
                if resolution is not None:
                    break
                print("❌ Invalid choice. Please pick one of the listed options.")
                default_text = ""

            logger.info(f"Resolved '{conflict.import_name}' as {resolution}")
            resolutions[conflict.import_member_id] = resolution
            by_name[conflict.import_name] = resolution

    except (KeyboardInterrupt, EOFError):
        print("\n⏭️  Import cancelled")
        return None

    return resolutions


def link_all_to_existing(
    conflicts: tuple[ImportConflict, ...],
) -> dict[UUID, ImportResolution]:
    """Non-interactive resolution: map every conflict onto its first candidate."""
    return {
        conflict.import_member_id: LinkToExisting(conflict.existing_friend.member_id)
        for conflict in conflicts
    }
