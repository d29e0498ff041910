"""Display identity projection.

The name shown next to a message or typing indicator is computed when the
event is produced and attached to the outbound payload only. Toggling
anonymity later never rewrites what was already shown.
"""
from typing import Tuple

from groupchat.store.schemas import UserIdentity


def resolve_display(
    user: UserIdentity, anonymity_override: bool, anonymous_label: str
) -> Tuple[str, bool]:
    """Return ``(display_name, is_anonymous)`` for an author at this instant."""
    is_anonymous = bool(anonymity_override or user.is_anonymous)
    if is_anonymous:
        return anonymous_label, True
    return user.display_name, False
