from backend import database as db


def test_password_hashing():
    hashed = db.hash_password("secret")

    assert "secret" not in hashed
    assert db.check_password("secret", hashed)
    assert not db.check_password("Secret", hashed)
    # Salted: same password, different hash
    assert db.hash_password("secret") != hashed


def test_usernames_are_unique_case_insensitive():
    assert db.create_user("Alice", "alice", "pw") is not None
    assert db.create_user("Other Alice", "ALICE", "pw") is None


def test_authenticate_user():
    db.create_user("Alice", "alice", "pw")

    assert db.authenticate_user("alice", "pw")["username"] == "alice"
    assert db.authenticate_user("alice", "nope") is None
    assert db.authenticate_user("bob", "pw") is None


def test_sessions():
    user_id = db.create_user("Alice", "alice", "pw")
    token = db.create_session(user_id)

    assert db.get_session_user(token)["id"] == user_id
    assert db.delete_session(token)
    assert db.get_session_user(token) is None
    assert db.get_session_user("") is None


def test_expired_session_is_rejected_and_purged():
    user_id = db.create_user("Alice", "alice", "pw")
    expired = db.create_session(user_id, ttl_hours=-1)
    assert db.get_session_user(expired) is None

    db.create_session(user_id)
    # Creating a new session purges the expired one
    assert not db.delete_session(expired)


def test_search_users():
    alice = db.create_user("Alice Liddell", "alice", "pw")
    db.create_user("Bob", "bobby", "pw")
    db.create_user("Carol", "carol_b", "pw")

    assert [u["username"] for u in db.search_users("B", exclude_user_id=alice)] == ["bobby", "carol_b"]
    assert [u["username"] for u in db.search_users("liddell")] == ["alice"]
    assert db.search_users("liddell", exclude_user_id=alice) == []
    assert db.search_users("   ") == []
    assert len(db.search_users("o", limit=1)) == 1
    assert "password_hash" not in db.search_users("bob")[0]


def test_party_state_roundtrip():
    user_id = db.create_user("Alice", "alice", "pw")
    show_id = db.create_show(title="Coco", title_type="movie")
    video_id = db.create_show_video(show_id=show_id, title="Coco", video_url="/media/movies/coco.mp4", duration=6302)
    party_id = db.create_party(user_id, video_id)

    party = db.get_party_by_id(party_id)
    assert party["current_time"] == 0
    assert party["is_playing"] is False
    assert db.is_party_member(party_id, user_id)

    db.update_party_state(party_id, True, 120.5)
    party = db.get_party_by_id(party_id)
    assert party["current_time"] == 120.5
    assert party["is_playing"] is True

    db.set_party_video(party_id, video_id)
    party = db.get_party_by_id(party_id)
    assert party["current_time"] == 0
    assert party["is_playing"] is False


def test_members_in_join_order():
    alice = db.create_user("Alice", "alice", "pw")
    bob = db.create_user("Bob", "bob", "pw")
    show_id = db.create_show(title="Coco", title_type="movie")
    video_id = db.create_show_video(show_id=show_id, video_url="/x.mp4")
    party_id = db.create_party(alice, video_id)

    assert db.add_party_member(party_id, bob)
    assert not db.add_party_member(party_id, bob)
    assert [m["id"] for m in db.get_party_members(party_id)] == [alice, bob]

    assert db.remove_party_member(party_id, alice)
    assert [m["id"] for m in db.get_party_members(party_id)] == [bob]


def test_messages_since():
    alice = db.create_user("Alice", "alice", "pw")
    show_id = db.create_show(title="Coco", title_type="movie")
    video_id = db.create_show_video(show_id=show_id, video_url="/x.mp4")
    party_id = db.create_party(alice, video_id)

    first = db.create_message(party_id, alice, "hello")
    db.create_message(party_id, alice, "anyone?")

    assert [m["text"] for m in db.get_messages(party_id)] == ["hello", "anyone?"]
    assert [m["text"] for m in db.get_messages(party_id, since=first)] == ["anyone?"]
    assert db.get_messages(party_id)[0]["user"]["username"] == "alice"


def test_deleting_party_cascades():
    alice = db.create_user("Alice", "alice", "pw")
    bob = db.create_user("Bob", "bob", "pw")
    show_id = db.create_show(title="Coco", title_type="movie")
    video_id = db.create_show_video(show_id=show_id, video_url="/x.mp4")
    party_id = db.create_party(alice, video_id)
    invitation_id = db.create_invitation(party_id, alice, bob)
    db.create_message(party_id, alice, "hi")

    assert db.delete_party(party_id)
    assert db.get_invitation_by_id(invitation_id) is None
    assert db.get_party_members(party_id) == []
    assert db.get_messages(party_id) == []


def test_search_treats_wildcards_literally():
    db.create_user("Bob", "bob", "pw")
    db.create_show(title="100% Wolf", title_type="movie")
    db.create_show(title="Coco", title_type="movie")

    assert db.search_users("%") == []
    assert db.search_users("_") == []
    assert [s["title"] for s in db.get_shows(search="%")] == ["100% Wolf"]
    assert [s["title"] for s in db.get_shows(search="c_co")] == []
