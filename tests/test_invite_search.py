import pytest

from backend import invite_search
from backend.invite_search import InviteState, reduce


def act(state, kind, **payload):
    return reduce(state, {"type": kind, "payload": payload})


ALICE = {"id": 1, "name": "Alice", "username": "alice", "avatar": ""}
BOB = {"id": 2, "name": "Bob", "username": "bob", "avatar": ""}
CAROL = {"id": 3, "name": "Carol", "username": "carol", "avatar": ""}


def test_request_lifecycle():
    state = act(InviteState(), "request:init")
    assert state.is_loading

    state = act(state, "request:success", data=[BOB])
    assert state.data == [BOB]
    assert not state.is_loading

    state = act(act(state, "request:init"), "request:error")
    assert not state.is_loading
    assert state.data == [BOB]


def test_input_clears_results_only_when_not_blank():
    state = InviteState(data=[BOB], input="bo")

    typed = act(state, "input", input="bob")
    assert typed.input == "bob"
    assert typed.data == []

    cleared = act(state, "input", input="")
    assert cleared.input == ""
    assert cleared.data == [BOB]


def test_sending_flags():
    state = act(InviteState(), "invitation.send:init", id=2)
    assert state.is_sending_invitation == {2: True}

    assert act(state, "invitation.send:success", id=2).is_sending_invitation == {}
    assert act(state, "invitation.send:error", id=2).is_sending_invitation == {}


def test_cancelling_flags():
    state = act(InviteState(), "invitation.cancel:init", id=3)
    state = act(state, "invitation.cancel:init", id=2)
    assert state.is_cancelling_invitation == {3: True, 2: True}

    state = act(state, "invitation.cancel:success", id=3)
    assert state.is_cancelling_invitation == {2: True}


def test_invalid_action_raises():
    with pytest.raises(ValueError, match="invalid action type"):
        act(InviteState(), "request:retry")


def test_index_helpers():
    invitations = [{"id": 10, "recipient": BOB}, {"id": 11, "recipient": CAROL}]

    assert invite_search.index_by([ALICE, BOB], "id") == {1: True, 2: True}
    assert invite_search.position_by(invitations, "recipient.id") == {2: 0, 3: 1}


def test_user_items_blank_input_lists_invitations():
    party = {"members": [ALICE], "invitations": [{"id": 10, "recipient": BOB}]}
    items = invite_search.user_items(InviteState(), party)

    assert len(items) == 1
    assert items[0]["user"] == BOB
    assert items[0]["can_cancel"]
    assert not items[0]["can_invite"]


def test_user_items_search_results():
    party = {"members": [ALICE], "invitations": [{"id": 10, "recipient": BOB}]}
    state = InviteState(input="a", data=[ALICE, BOB, CAROL], is_sending_invitation={3: True})
    items = {item["user"]["id"]: item for item in invite_search.user_items(state, party)}

    assert items[1]["is_member"]
    assert not items[1]["can_invite"]
    assert not items[1]["can_cancel"]

    assert items[2]["invitation"]["id"] == 10
    assert items[2]["can_cancel"]

    assert items[3]["can_invite"]
    assert items[3]["is_sending"]
    assert not items[3]["is_cancelling"]
