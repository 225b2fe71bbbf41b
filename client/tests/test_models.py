from chat_client.models import ActionResult, Friend, FriendsSnapshot, Message, Reaction


def test_message_from_wire_reads_server_field_names():
    message = Message.from_wire(
        {
            "_id": "m1",
            "roomId": "alice_bob",
            "sender": "bob",
            "msg": "hi",
            "timestamp": 1700000000000,
            "reactions": [{"user": "alice", "emoji": "👍"}, "junk"],
        }
    )

    assert message.id == "m1"
    assert message.room_id == "alice_bob"
    assert message.body == "hi"
    assert message.timestamp == 1700000000000
    assert message.seen is False
    assert message.reactions == (Reaction(user="alice", emoji="👍"),)


def test_message_from_wire_accepts_alternate_keys_and_iso_timestamp():
    message = Message.from_wire(
        {"id": "m2", "roomId": "r", "sender": "bob", "body": "yo", "timestamp": "1970-01-01T00:00:01Z", "seen": True}
    )

    assert message.id == "m2"
    assert message.body == "yo"
    assert message.timestamp == 1000
    assert message.seen is True


def test_message_updates_return_new_instances():
    message = Message(id="m1", room_id="r", sender="bob", body="hi")

    seen = message.mark_seen()
    reacted = message.with_reactions([Reaction("bob", "❤️")])

    assert seen.seen and not message.seen
    assert reacted.reactions == (Reaction("bob", "❤️"),)
    assert message.reactions == ()
    assert seen.mark_seen() is seen


def test_friends_snapshot_from_wire():
    snapshot = FriendsSnapshot.from_wire(
        {
            "friends": [{"_id": "u2", "username": "bob"}],
            "pendingRequests": [{"id": "u3", "username": "carol"}],
        }
    )

    assert snapshot.friends == [Friend(id="u2", username="bob")]
    assert snapshot.pending_requests == [Friend(id="u3", username="carol")]
    assert FriendsSnapshot.from_wire(None) == FriendsSnapshot()


def test_action_result_from_wire():
    assert ActionResult.from_wire({"success": True}) == ActionResult(success=True)
    assert ActionResult.from_wire({"message": "sent"}) == ActionResult(success=True)
    assert ActionResult.from_wire({"success": False, "error": "nope"}) == ActionResult(False, "nope")
    assert ActionResult.from_wire({"error": "blocked"}) == ActionResult(False, "blocked")
    assert ActionResult.from_wire([]).success is False
    assert ActionResult.from_wire({}) == ActionResult(False, "empty response")
