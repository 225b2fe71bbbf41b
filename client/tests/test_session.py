import json
from pathlib import Path

from chat_client.session import TOKEN_KEY, USER_KEY, IdentityContext, Session, SessionSlot


def test_slot_saves_both_keys_atomically(tmp_path: Path):
    path = tmp_path / "nested" / "session.json"
    slot = SessionSlot(path)
    slot.save(Session(username="alice", credential="tok"))

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {USER_KEY: "alice", TOKEN_KEY: "tok"}
    assert not path.with_suffix(path.suffix + ".tmp").exists()
    assert slot.load() == Session(username="alice", credential="tok")


def test_slot_load_rejects_missing_or_partial_data(tmp_path: Path):
    path = tmp_path / "session.json"
    slot = SessionSlot(path)
    assert slot.load() is None

    path.write_text("{not json", encoding="utf-8")
    assert slot.load() is None

    path.write_text(json.dumps({USER_KEY: "alice"}), encoding="utf-8")
    assert slot.load() is None

    path.write_text(json.dumps({USER_KEY: "alice", TOKEN_KEY: ""}), encoding="utf-8")
    assert slot.load() is None


def test_identity_initialized_from_slot(tmp_path: Path):
    slot = SessionSlot(tmp_path / "session.json")
    slot.save(Session(username="bob", credential="tok-bob"))

    identity = IdentityContext.from_slot(slot)

    assert identity.is_authenticated
    assert identity.username == "bob"
    assert identity.credential == "tok-bob"


def test_set_auth_persists_and_logout_clears(tmp_path: Path):
    path = tmp_path / "session.json"
    identity = IdentityContext.from_slot(SessionSlot(path))
    assert not identity.is_authenticated

    identity.set_auth("alice", "tok")
    assert path.exists()
    assert identity.username == "alice"

    identity.set_auth("alice", None)
    assert not identity.is_authenticated
    assert identity.credential is None
    assert not path.exists()


def test_identity_without_slot_keeps_state_in_memory():
    identity = IdentityContext()
    identity.set_auth("alice", "tok")
    assert identity.session == Session(username="alice", credential="tok")

    identity.clear()
    assert identity.session is None
