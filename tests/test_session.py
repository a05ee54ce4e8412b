"""Tests for HD wallet identities, the session counter and the wallet store."""

import json
import stat

import pytest
from cryptography.fernet import Fernet

from conftest import TEST_MNEMONIC

from hashield.hdwallet import (
    FileCounterStore,
    InvalidMnemonicError,
    MasterIdentity,
    MemoryCounterStore,
    NoMasterIdentityError,
    SessionKeyCoordinator,
    SessionNotFoundError,
    WalletStore,
)
from hashield.hdwallet.base import derivation_path


class TestMasterIdentity:
    """Tests for BIP-39/BIP-44 derivation."""

    def test_known_master_address(self, master):
        """Index 0 of the standard test mnemonic is a well-known address."""
        assert master.address == "0x9858EfFD232B4033E47d90003D41EC34EcaEda94"

    def test_invalid_mnemonic_rejected(self):
        with pytest.raises(InvalidMnemonicError):
            MasterIdentity("not a valid seed phrase at all")

    def test_whitespace_is_normalized(self, master):
        phrase = "  " + TEST_MNEMONIC.replace(" ", "   ") + "\n"
        assert MasterIdentity(phrase).address == master.address

    def test_derivation_is_deterministic(self, master):
        """Same index gives the same address; different indexes differ."""
        first = master.derive(3)
        again = MasterIdentity(TEST_MNEMONIC).derive(3)

        assert first.address == again.address
        assert first.address != master.derive(4).address
        assert first.address != master.address
        assert first.derivation_path == "m/44'/60'/0'/0/3"

    def test_index_zero_is_reserved(self, master):
        with pytest.raises(ValueError):
            master.derive(0)

    def test_account_matches_address(self, master):
        session = master.derive(1)
        assert session.account.address == session.address

    def test_repr_hides_phrase(self, master):
        assert "abandon" not in repr(master)
        assert "account" not in repr(master.derive(1))

    def test_derivation_path_helper(self):
        assert derivation_path(7) == "m/44'/60'/0'/0/7"


class TestSessionKeyCoordinator:
    """Tests for the monotonic session counter."""

    def test_derive_next_increments_and_persists(self, sessions, counter_store):
        """Every derivation persists the counter before returning."""
        first = sessions.derive_next()
        second = sessions.derive_next()

        assert first.index == 1
        assert second.index == 2
        assert counter_store.value == 2
        assert counter_store.saves == 2
        assert sessions.current() == second

    def test_addresses_never_repeat(self, sessions):
        addresses = {sessions.derive_next().address for _ in range(20)}
        assert len(addresses) == 20

    def test_requires_master(self):
        coordinator = SessionKeyCoordinator(MemoryCounterStore())
        with pytest.raises(NoMasterIdentityError):
            coordinator.derive_next()
        assert coordinator.current() is None
        assert coordinator.history() == []

    def test_restore_keeps_counter(self, sessions):
        """Switching back to an old session does not rewind the counter."""
        first = sessions.derive_next()
        sessions.derive_next()
        sessions.derive_next()

        restored = sessions.restore(1)
        assert restored.address == first.address
        assert sessions.current() == first
        assert sessions.counter == 3

        assert sessions.derive_next().index == 4

    def test_restore_unknown_index(self, sessions):
        sessions.derive_next()
        with pytest.raises(SessionNotFoundError):
            sessions.restore(2)
        with pytest.raises(SessionNotFoundError):
            sessions.restore(0)

    def test_history_newest_first(self, sessions):
        for _ in range(3):
            sessions.derive_next()
        assert [s.index for s in sessions.history()] == [3, 2, 1]

    def test_counter_survives_restart(self, master, tmp_path):
        """A new coordinator on the same file picks up where the last one stopped."""
        path = tmp_path / "session_counter.json"
        first = SessionKeyCoordinator(FileCounterStore(path))
        first.load_master(master)
        first.derive_next()
        last = first.derive_next()

        restarted = SessionKeyCoordinator(FileCounterStore(path))
        restarted.load_master(master)
        assert restarted.counter == 2
        assert restarted.current().address == last.address
        assert restarted.derive_next().index == 3

    def test_load_master_reset_counter(self, master, counter_store):
        counter_store.value = 9
        coordinator = SessionKeyCoordinator(counter_store)
        coordinator.load_master(master, reset_counter=True)

        assert coordinator.counter == 0
        assert coordinator.current() is None
        assert coordinator.derive_next().index == 1

    def test_clear_destroys_state(self, sessions, counter_store):
        sessions.derive_next()
        sessions.clear()

        assert sessions.master is None
        assert sessions.current() is None
        assert sessions.history() == []
        assert counter_store.value == 0

    def test_to_dict(self, sessions):
        session = sessions.derive_next()
        assert session.to_dict(is_current=True) == {
            "sessionNumber": 1,
            "address": session.address,
            "isCurrent": True,
        }


class TestFileCounterStore:
    def test_missing_file_is_zero(self, tmp_path):
        assert FileCounterStore(tmp_path / "missing.json").load() == 0

    def test_round_trip_format(self, tmp_path):
        path = tmp_path / "counter.json"
        FileCounterStore(path).save(5)
        assert json.loads(path.read_text()) == {"sessionCounter": 5}
        assert list(tmp_path.iterdir()) == [path]

    def test_corrupted_file(self, tmp_path):
        path = tmp_path / "counter.json"
        path.write_text("{not json")
        with pytest.raises(ValueError):
            FileCounterStore(path).load()


class TestWalletStore:
    """Tests for seed phrase persistence."""

    def test_encrypted_when_key_set(self, tmp_path):
        """The phrase never hits disk in clear text when a master key is set."""
        key = Fernet.generate_key().decode()
        store = WalletStore(tmp_path / "wallet.json", key)
        store.save_phrase(TEST_MNEMONIC)

        assert "abandon" not in (tmp_path / "wallet.json").read_text()
        assert store.load_phrase() == TEST_MNEMONIC

    def test_missing_wallet(self, tmp_path):
        assert WalletStore(tmp_path / "wallet.json").load_phrase() is None

    def test_clear_removes_file(self, tmp_path):
        key = Fernet.generate_key().decode()
        store = WalletStore(tmp_path / "wallet.json", key)
        store.save_phrase(TEST_MNEMONIC)
        store.clear()

        assert store.load_phrase() is None
        assert not (tmp_path / "wallet.json").exists()

    def test_owner_only_and_atomic(self, tmp_path):
        key = Fernet.generate_key().decode()
        path = tmp_path / "wallet.json"
        path.write_text("{}")
        path.chmod(0o644)

        WalletStore(path, key).save_phrase(TEST_MNEMONIC)

        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert [p.name for p in tmp_path.iterdir()] == ["wallet.json"]
        assert WalletStore(path, key).load_phrase() == TEST_MNEMONIC

    def test_failed_write_keeps_previous_wallet(self, tmp_path, monkeypatch):
        key = Fernet.generate_key().decode()
        path = tmp_path / "wallet.json"
        store = WalletStore(path, key)
        store.save_phrase(TEST_MNEMONIC)

        def broken_dump(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("hashield.hdwallet.store.json.dump", broken_dump)
        with pytest.raises(OSError):
            store.save_phrase("legal winner thank year wave sausage worth useful legal winner thank yellow")

        assert store.load_phrase() == TEST_MNEMONIC
        assert [p.name for p in tmp_path.iterdir()] == ["wallet.json"]
