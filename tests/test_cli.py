"""
Test suite for configuration loading and the node startup sequence.
"""

import json
import pytest
import tempfile
import shutil
from pathlib import Path

from nodegate.cli import prepare_node, run
from nodegate.config import load_config
from nodegate.exceptions import MissingPassword, SeedPhraseNotAllowedOnRestart
from nodegate.node import Bootstrap, Restart

ALICE_SEED = "0xe5be9a5092b81bca64be81d212e7f2f9eba183bb7a90954f7b76361f6edb5c0a"
PASSWORD = "test_password"


# ===== FIXTURES =====

@pytest.fixture
def temp_dir():
    temp_dir = tempfile.mkdtemp(prefix="nodegate_cli_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "NODEGATE_PASSWORD",
        "NODEGATE_SECRET",
        "NODEGATE_API_HOST",
        "NODEGATE_API_PORT",
        "NODEGATE_SS58_FORMAT",
        "NODEGATE_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ===== CONFIG TESTS =====

class TestLoadConfig:

    def test_defaults(self, clean_env):
        config = load_config(["--path", "node_data", "--password", PASSWORD])

        assert config.path == Path("node_data")
        assert config.host == "127.0.0.1"
        assert config.port == 4001
        assert config.ss58_format == 29
        assert config.log_dir == Path("logs")
        assert isinstance(config.startup_mode(), Restart)

    def test_environment_fallbacks(self, clean_env):
        clean_env.setenv("NODEGATE_PASSWORD", "from-env")
        clean_env.setenv("NODEGATE_API_PORT", "5005")
        clean_env.setenv("NODEGATE_SS58_FORMAT", "42")

        config = load_config(["--path", "node_data"])

        assert config.password_value == "from-env"
        assert config.port == 5005
        assert config.ss58_format == 42

    def test_flags_override_environment(self, clean_env):
        clean_env.setenv("NODEGATE_PASSWORD", "from-env")

        config = load_config(["--path", "node_data", "--password", "from-flag", "--port", "6000"])

        assert config.password_value == "from-flag"
        assert config.port == 6000

    def test_secrets_hidden_from_repr(self, clean_env):
        config = load_config(["--path", "p", "--password", PASSWORD, "--bootstrap", "--suri", ALICE_SEED])

        assert PASSWORD not in repr(config)
        assert ALICE_SEED not in repr(config)
        assert isinstance(config.startup_mode(), Bootstrap)

    def test_path_required(self, clean_env):
        with pytest.raises(SystemExit):
            load_config(["--password", PASSWORD])

    def test_invalid_flag_combinations(self, clean_env):
        with pytest.raises(MissingPassword):
            load_config(["--path", "p"]).startup_mode()
        with pytest.raises(SeedPhraseNotAllowedOnRestart):
            load_config(["--path", "p", "--password", PASSWORD, "--suri", ALICE_SEED]).startup_mode()


# ===== STARTUP TESTS =====

class TestPrepareNode:

    def test_bootstrap_then_restart(self, temp_dir, clean_env):
        node_path = temp_dir / "node_data"

        config = load_config(["--path", str(node_path), "--password", PASSWORD, "--bootstrap", "--suri", ALICE_SEED])
        access_control, identity, signer = prepare_node(config)

        assert access_control.node_ids == {identity.node_id}
        assert json.loads((node_path / "allowed_node_ids.json").read_text()) == [identity.node_id]

        config = load_config(["--path", str(node_path), "--password", PASSWORD])
        _, restarted_identity, restarted_signer = prepare_node(config)

        assert restarted_identity.node_id == identity.node_id
        assert restarted_signer.ss58_address == signer.ss58_address

    def test_run_reports_startup_errors(self, temp_dir, clean_env):
        exit_code = run([
            "--path", str(temp_dir / "missing"),
            "--password", PASSWORD,
            "--log-dir", str(temp_dir / "logs"),
        ])

        assert exit_code == 1
