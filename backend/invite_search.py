"""
Invite-screen state.

Tracks the friend search box (input, results, loading) and which
invitations are being sent or cancelled, keyed by user ID.
"""

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class InviteState:
    data: list = field(default_factory=list)
    is_loading: bool = False
    input: str = ""
    is_sending_invitation: dict = field(default_factory=dict)
    is_cancelling_invitation: dict = field(default_factory=dict)


def _with_flag(flags: dict, key, on: bool) -> dict:
    flags = dict(flags)
    if on:
        flags[key] = True
    else:
        flags.pop(key, None)
    return flags


def reduce(state: InviteState, action: dict) -> InviteState:
    """Apply an action to the invite state. Unknown actions raise ValueError."""
    kind = action["type"]
    payload = action.get("payload") or {}

    if kind == "request:init":
        return replace(state, is_loading=True)

    if kind == "request:success":
        return replace(state, data=list(payload["data"]), is_loading=False)

    if kind == "request:error":
        return replace(state, is_loading=False)

    if kind == "input":
        text = payload["input"]
        # A new search term empties the stale results
        return replace(state, input=text, data=[] if text else state.data)

    if kind in ("invitation.send:init", "invitation.send:success", "invitation.send:error"):
        return replace(
            state,
            is_sending_invitation=_with_flag(
                state.is_sending_invitation, payload["id"], kind.endswith(":init")
            ),
        )

    if kind in ("invitation.cancel:init", "invitation.cancel:success", "invitation.cancel:error"):
        return replace(
            state,
            is_cancelling_invitation=_with_flag(
                state.is_cancelling_invitation, payload["id"], kind.endswith(":init")
            ),
        )

    raise ValueError(f"invite search: {kind} is an invalid action type.")


def _lookup(item: dict, path: str):
    value = item
    for key in path.split("."):
        value = value[key]
    return value


def index_by(items: list[dict], path: str) -> dict:
    """Map item[path] -> True. `path` may be dotted, e.g. 'recipient.id'."""
    return {_lookup(item, path): True for item in items}


def position_by(items: list[dict], path: str) -> dict:
    """Map item[path] -> position of the item in `items`."""
    return {_lookup(item, path): i for i, item in enumerate(items)}


def user_items(state: InviteState, party: dict) -> list[dict]:
    """
    Rows the invite screen lists.

    Blank input lists the party's pending invitations; otherwise the search
    results, each annotated with membership and invitation status.
    """
    members = index_by(party.get("members", []), "id")
    invitations = party.get("invitations", [])
    invitation_positions = position_by(invitations, "recipient.id")

    if not state.input:
        rows = [(invitation["recipient"], invitation) for invitation in invitations]
    else:
        rows = []
        for user in state.data:
            position = invitation_positions.get(user["id"])
            rows.append((user, invitations[position] if position is not None else None))

    items = []
    for user, invitation in rows:
        is_member = user["id"] in members
        items.append({
            "user": user,
            "invitation": invitation,
            "is_member": is_member,
            "is_sending": state.is_sending_invitation.get(user["id"], False),
            "is_cancelling": state.is_cancelling_invitation.get(user["id"], False),
            "can_cancel": invitation is not None,
            "can_invite": not is_member and invitation is None,
        })
    return items
