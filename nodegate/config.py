"""
Node configuration.

Command-line flags win over environment variables:

    --path        data directory (required)
    --password    node password              NODEGATE_PASSWORD
    --bootstrap   first run, requires --suri
    --suri        seed phrase / secret URI
    --secret      keystore encryption secret NODEGATE_SECRET
    --host        API listen host            NODEGATE_API_HOST (127.0.0.1)
    --port        API listen port            NODEGATE_API_PORT (4001)
    --ss58-format chain address format       NODEGATE_SS58_FORMAT (29)
    --log-dir     log file directory         NODEGATE_LOG_DIR (logs)
"""

import argparse
import os
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, SecretStr

from nodegate.keystore.signer import DEFAULT_SS58_FORMAT
from nodegate.node.bootstrap import StartupMode, resolve_startup_mode


def _reveal(value: Optional[SecretStr]) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


class NodeConfig(BaseModel):
    """Node startup configuration."""

    path: Path = Field(..., description="Directory holding the keystore, password hash and allowlists")
    password: Optional[SecretStr] = Field(default=None, description="Node password, required on every run")
    bootstrap: bool = Field(default=False, description="Bootstrap a new node (requires suri)")
    suri: Optional[SecretStr] = Field(default=None, description="Seed phrase or secret URI, bootstrap only")
    secret: Optional[SecretStr] = Field(default=None, description="Optional keystore encryption secret")

    host: str = Field(
        default="127.0.0.1",
        description="API host (use 0.0.0.0 for Docker/cloud, set via NODEGATE_API_HOST env var)"
    )
    port: int = Field(default=4001, description="API port")
    ss58_format: int = Field(default=DEFAULT_SS58_FORMAT, description="SS58 format for chain addresses")
    log_dir: Path = Field(default=Path("logs"), description="Directory for log files")

    @property
    def password_value(self) -> Optional[str]:
        return _reveal(self.password)

    def startup_mode(self) -> StartupMode:
        """Validate the flags and pick bootstrap or restart."""
        return resolve_startup_mode(
            password=self.password_value,
            bootstrap=self.bootstrap,
            seed_phrase=_reveal(self.suri),
            secret=_reveal(self.secret),
        )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nodegate",
        description="NodeGate - node identity bootstrap and access-control gateway",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "First run:\n"
            "  nodegate --path ./node_data --password <password> --bootstrap --suri <seed phrase>\n"
            "Restart:\n"
            "  nodegate --path ./node_data --password <password>"
        ),
    )
    parser.add_argument("--path", required=True, help="Path to persistently store node data")
    parser.add_argument("--password", help="A password for your node")
    parser.add_argument("--bootstrap", action="store_true", help="Bootstraps the node. Requires --suri")
    parser.add_argument("--suri", help="Seed phrase or SURI (secret URI) to generate keypairs")
    parser.add_argument(
        "--secret",
        help="Added layer of security for your keypairs. If provided, the keystore is encrypted",
    )
    parser.add_argument("--host", help="API listen host")
    parser.add_argument("--port", type=int, help="API listen port")
    parser.add_argument("--ss58-format", type=int, help="SS58 address format for the chain account")
    parser.add_argument("--log-dir", help="Directory for log files")
    return parser


def load_config(argv: Optional[List[str]] = None) -> NodeConfig:
    """Parse ``argv`` and fill unset options from the environment."""
    args = create_parser().parse_args(argv)

    return NodeConfig(
        path=Path(args.path),
        password=args.password if args.password is not None else os.getenv("NODEGATE_PASSWORD"),
        bootstrap=args.bootstrap,
        suri=args.suri,
        secret=args.secret if args.secret is not None else os.getenv("NODEGATE_SECRET"),
        host=args.host or os.getenv("NODEGATE_API_HOST", "127.0.0.1"),
        port=args.port or int(os.getenv("NODEGATE_API_PORT", "4001")),
        ss58_format=(
            args.ss58_format if args.ss58_format is not None
            else int(os.getenv("NODEGATE_SS58_FORMAT", str(DEFAULT_SS58_FORMAT)))
        ),
        log_dir=Path(args.log_dir or os.getenv("NODEGATE_LOG_DIR", "logs")),
    )
