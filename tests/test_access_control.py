"""
Test suite for the access-control store and gatekeeper.

Tests allowlist loading and persistence, first-run self registration,
domain normalization and per-request authorization.
"""

import asyncio
import json
import threading
import pytest
import tempfile
import shutil
from pathlib import Path

from nodegate.auth import (
    DOMAINS_FILE,
    NODE_IDS_FILE,
    AccessControlState,
    get_author_id,
    init_access_control,
    is_valid_domain,
    normalize_domain,
    save_set,
)
from nodegate.exceptions import (
    AllowlistWriteFailed,
    BadRequest,
    CorruptedAllowlist,
    Forbidden,
    Unauthorized,
)

SELF_ID = "11" * 32
PEER_ID = "22" * 32


# ===== FIXTURES =====

@pytest.fixture
def storage_dir():
    """Create a temporary data directory."""
    temp_dir = tempfile.mkdtemp(prefix="nodegate_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def state(storage_dir):
    return AccessControlState.load(storage_dir)


def read_list(path: Path):
    return json.loads(path.read_text())


# ===== STORAGE TESTS =====

class TestAllowlistStorage:
    """Test loading allowlists from disk."""

    def test_init_creates_directory(self, storage_dir):
        target = storage_dir / "nested" / "data"

        node_ids, domains = init_access_control(target)

        assert target.is_dir()
        assert node_ids == set()
        assert domains == set()

    def test_init_loads_existing_files(self, storage_dir):
        (storage_dir / NODE_IDS_FILE).write_text(json.dumps([SELF_ID, PEER_ID]))
        (storage_dir / DOMAINS_FILE).write_text(json.dumps(["example.com"]))

        node_ids, domains = init_access_control(storage_dir)

        assert node_ids == {SELF_ID, PEER_ID}
        assert domains == {"example.com"}

    def test_malformed_json(self, storage_dir):
        (storage_dir / NODE_IDS_FILE).write_text("[not json")

        with pytest.raises(CorruptedAllowlist):
            init_access_control(storage_dir)

    def test_wrong_json_shape(self, storage_dir):
        (storage_dir / DOMAINS_FILE).write_text(json.dumps({"example.com": True}))

        with pytest.raises(CorruptedAllowlist):
            init_access_control(storage_dir)

    def test_non_string_entries(self, storage_dir):
        (storage_dir / NODE_IDS_FILE).write_text(json.dumps([SELF_ID, 42]))

        with pytest.raises(CorruptedAllowlist):
            AccessControlState.load(storage_dir)


# ===== SELF REGISTRATION TESTS =====

class TestSelfRegistration:
    """Test first-run registration of the node's own id."""

    @pytest.mark.asyncio
    async def test_first_run_adds_self(self, state, storage_dir):
        added = await state.ensure_self_registered(SELF_ID)

        assert added
        assert state.node_ids == {SELF_ID}
        assert read_list(storage_dir / NODE_IDS_FILE) == [SELF_ID]

    @pytest.mark.asyncio
    async def test_second_call_is_noop(self, state):
        await state.ensure_self_registered(SELF_ID)

        added = await state.ensure_self_registered(PEER_ID)

        assert not added
        assert state.node_ids == {SELF_ID}

    @pytest.mark.asyncio
    async def test_removed_self_not_readded(self, state, storage_dir):
        await state.ensure_self_registered(SELF_ID)
        await state.add_node(PEER_ID)
        await state.remove_node(SELF_ID)

        reloaded = AccessControlState.load(storage_dir)
        added = await reloaded.ensure_self_registered(SELF_ID)

        assert not added
        assert reloaded.node_ids == {PEER_ID}


# ===== MUTATION TESTS =====

class TestAllowlistMutation:
    """Test write-through add/remove operations."""

    @pytest.mark.asyncio
    async def test_add_node_round_trip(self, state, storage_dir):
        await state.add_node(PEER_ID)

        assert state.is_node_allowed(PEER_ID)
        assert PEER_ID in AccessControlState.load(storage_dir).node_ids

    @pytest.mark.asyncio
    async def test_remove_node_round_trip(self, state, storage_dir):
        await state.add_node(PEER_ID)
        await state.remove_node(PEER_ID)

        assert not state.is_node_allowed(PEER_ID)
        assert PEER_ID not in AccessControlState.load(storage_dir).node_ids

    @pytest.mark.asyncio
    async def test_add_reports_change(self, state):
        assert await state.add_node(PEER_ID)
        assert not await state.add_node(PEER_ID)
        assert await state.remove_node(PEER_ID)
        assert not await state.remove_node(PEER_ID)

    @pytest.mark.asyncio
    async def test_domain_round_trip(self, state, storage_dir):
        await state.add_domain("https://Example.com/path")

        assert read_list(storage_dir / DOMAINS_FILE) == ["example.com"]

        await state.remove_domain("EXAMPLE.com")

        assert AccessControlState.load(storage_dir).domains == frozenset()

    @pytest.mark.asyncio
    async def test_invalid_domain_rejected(self, state, storage_dir):
        with pytest.raises(BadRequest):
            await state.add_domain("https:///path-only")

        assert not (storage_dir / DOMAINS_FILE).exists()

    @pytest.mark.asyncio
    async def test_concurrent_adds_all_persisted(self, state, storage_dir):
        peers = [f"{i:064x}" for i in range(20)]

        await asyncio.gather(*(state.add_node(peer) for peer in peers))

        assert AccessControlState.load(storage_dir).node_ids == frozenset(peers)

    @pytest.mark.asyncio
    async def test_failed_write_rolls_back(self, state, storage_dir, monkeypatch):
        await state.add_node(SELF_ID)

        def failing_save(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("nodegate.auth.access_control.save_set", failing_save)

        with pytest.raises(AllowlistWriteFailed):
            await state.add_node(PEER_ID)
        with pytest.raises(AllowlistWriteFailed):
            await state.remove_node(SELF_ID)

        assert state.node_ids == {SELF_ID}
        assert read_list(storage_dir / NODE_IDS_FILE) == [SELF_ID]

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, state, storage_dir):
        await state.add_node(PEER_ID)
        await state.add_domain("example.com")

        assert sorted(p.name for p in storage_dir.iterdir()) == [DOMAINS_FILE, NODE_IDS_FILE]

    @pytest.mark.asyncio
    async def test_slow_write_does_not_hold_back_other_writers(self, state, storage_dir, monkeypatch):
        entered = threading.Event()
        release = threading.Event()

        def slow_save(*args):
            entered.set()
            release.wait(5)
            save_set(*args)

        monkeypatch.setattr("nodegate.auth.access_control.save_set", slow_save)

        first = asyncio.create_task(state.add_node(PEER_ID))
        await asyncio.to_thread(entered.wait, 5)

        second = asyncio.create_task(state.add_node(SELF_ID))
        await asyncio.sleep(0)

        # applied in memory while the first write is still on disk
        assert state.node_ids == {PEER_ID, SELF_ID}
        assert not first.done()

        release.set()
        assert await asyncio.gather(first, second) == [True, True]

        assert AccessControlState.load(storage_dir).node_ids == {PEER_ID, SELF_ID}

    @pytest.mark.asyncio
    async def test_addition_not_honored_until_saved(self, state, monkeypatch):
        seen_during_write = []

        def observing_save(*args):
            seen_during_write.append(state.is_node_allowed(PEER_ID))
            save_set(*args)

        monkeypatch.setattr("nodegate.auth.access_control.save_set", observing_save)

        await state.add_node(PEER_ID)

        assert seen_during_write == [False]
        assert state.is_node_allowed(PEER_ID)

    @pytest.mark.asyncio
    async def test_failed_addition_never_honored(self, state, storage_dir, monkeypatch):
        seen_during_write = []

        def failing_save(*args):
            seen_during_write.append(state.is_node_allowed(PEER_ID))
            raise OSError("disk full")

        monkeypatch.setattr("nodegate.auth.access_control.save_set", failing_save)

        with pytest.raises(AllowlistWriteFailed):
            await state.add_node(PEER_ID)

        assert seen_during_write == [False]
        assert not state.is_node_allowed(PEER_ID)
        assert not (storage_dir / NODE_IDS_FILE).exists()


# ===== DOMAIN NORMALIZATION TESTS =====

class TestDomainNormalization:
    """Test origin/domain normalization."""

    def test_strips_scheme_path_and_case(self):
        assert normalize_domain("https://Example.com/path") == "example.com"
        assert normalize_domain("http://example.com") == "example.com"
        assert normalize_domain("HTTPS://EXAMPLE.COM/") == "example.com"

    def test_idempotent(self):
        once = normalize_domain("https://Example.com/path")

        assert normalize_domain(once) == once
        assert normalize_domain("example.com") == once

    def test_keeps_port(self):
        assert normalize_domain("http://localhost:3000") == "localhost:3000"

    def test_malformed(self):
        assert normalize_domain("") is None
        assert normalize_domain("https://") is None
        assert normalize_domain("https:///path") is None
        assert normalize_domain("exa mple.com") is None

    def test_domain_validation(self):
        assert is_valid_domain("example.com")
        assert is_valid_domain("https://sub.example.com")
        assert not is_valid_domain("localhost")
        assert not is_valid_domain("https://example.com/path")


# ===== AUTHORIZATION TESTS =====

class TestAuthorization:
    """Test per-request header checks."""

    def test_missing_headers(self, state):
        with pytest.raises(Unauthorized):
            state.authorize(None, None)

    def test_unknown_node_forbidden(self, state):
        with pytest.raises(Forbidden):
            state.authorize(PEER_ID, None)

    @pytest.mark.asyncio
    async def test_allowed_node(self, state):
        await state.add_node(PEER_ID)

        state.authorize(PEER_ID, None)

    def test_unknown_domain_forbidden(self, state):
        with pytest.raises(Forbidden):
            state.authorize(None, "https://example.com")

    def test_malformed_origin(self, state):
        with pytest.raises(BadRequest):
            state.authorize(None, "https://")

    @pytest.mark.asyncio
    async def test_origin_normalized_before_check(self, state):
        await state.add_domain("example.com")

        state.authorize(None, "https://Example.com/path")

    @pytest.mark.asyncio
    async def test_added_origin_authorizes_bare_domain(self, state):
        await state.add_domain("https://Example.com/path")

        state.authorize(None, "example.com")

    @pytest.mark.asyncio
    async def test_both_headers_must_pass(self, state):
        await state.add_node(PEER_ID)
        await state.add_domain("example.com")

        state.authorize(PEER_ID, "https://example.com")

        with pytest.raises(Forbidden):
            state.authorize(PEER_ID, "https://other.com")
        with pytest.raises(Forbidden):
            state.authorize(SELF_ID, "https://example.com")

    @pytest.mark.asyncio
    async def test_node_id_case_insensitive(self, state, storage_dir):
        mixed = "Cd" * 32

        await state.add_node(mixed)

        state.authorize(mixed.upper(), None)
        state.authorize(f"  {mixed.lower()} ", None)
        assert read_list(storage_dir / NODE_IDS_FILE) == [mixed.lower()]

        await state.remove_node(mixed.upper())

        with pytest.raises(Forbidden):
            state.authorize(mixed, None)

    def test_loaded_node_ids_normalized(self, storage_dir):
        (storage_dir / NODE_IDS_FILE).write_text(json.dumps(["AB" * 32]))

        state = AccessControlState.load(storage_dir)

        assert state.node_ids == {"ab" * 32}
        state.authorize("Ab" * 32, None)

    def test_author_id_header(self):
        assert get_author_id({"author-id": "author"}) == "author"

        with pytest.raises(Unauthorized):
            get_author_id({})
        with pytest.raises(Unauthorized):
            get_author_id({"author-id": ""})
