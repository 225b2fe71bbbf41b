from chat_client.rooms import peer_of, room_id


def test_room_id_is_order_independent():
    assert room_id("alice", "bob") == room_id("bob", "alice")
    assert room_id("alice", "bob") == "alice_bob"


def test_room_id_differs_per_peer():
    assert room_id("alice", "bob") != room_id("alice", "carol")


def test_room_id_sorts_by_code_point_not_locale():
    assert room_id("bob", "Zed") == "Zed_bob"
    assert room_id("éva", "eve") == "eve_éva"


def test_peer_of_returns_other_participant():
    room = room_id("alice", "bob")
    assert peer_of(room, "alice") == "bob"
    assert peer_of(room, "bob") == "alice"
    assert peer_of("alice_alice", "alice") is None
