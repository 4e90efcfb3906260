#!/usr/bin/env python3
"""
NodeGate command-line entry point.

Bootstraps or restarts the node keystore, derives the node identity,
loads the access-control allowlists and serves the gateway API.

    nodegate --path ./node_data --password <password> --bootstrap --suri <seed phrase>
    nodegate --path ./node_data --password <password>
"""

import asyncio
import sys
from typing import List, Optional

import uvicorn
from loguru import logger

from nodegate.api_server import create_app
from nodegate.auth.access_control import AccessControlState
from nodegate.config import NodeConfig, load_config
from nodegate.exceptions import NodeGateError
from nodegate.node.bootstrap import Bootstrap, setup_node
from nodegate.node.identity import NodeIdentity


def prepare_node(config: NodeConfig):
    """
    Run the startup sequence up to the point the API can be served.

    Returns:
        (access_control, identity, signer)

    Raises:
        NodeGateError: any fatal startup error
    """
    mode = config.startup_mode()
    flow = "bootstrap" if isinstance(mode, Bootstrap) else "restart"
    logger.info("🚀 Starting node ({}) at {}", flow, config.path)

    setup = setup_node(config.path, config.password_value, mode, ss58_format=config.ss58_format)
    identity = NodeIdentity.from_seed(setup.secret_seed)

    access_control = AccessControlState.load(config.path)
    asyncio.run(access_control.ensure_self_registered(identity.node_id))

    return access_control, identity, setup.signer


def run(argv: Optional[List[str]] = None) -> int:
    config = load_config(argv)

    # Configure logging
    logger.add(
        str(config.log_dir / "nodegate_{time}.log"),
        rotation="1 day",
        retention="30 days",
        level="INFO"
    )

    try:
        access_control, identity, signer = prepare_node(config)
    except NodeGateError as e:
        logger.error(str(e))
        return 1

    logger.info("✅ Node ready")
    logger.info("   Your NodeId: {}", identity.node_id)
    logger.info("   Chain account: {}", signer.ss58_address)
    logger.info("🚀 Starting NodeGate API server on {}:{}", config.host, config.port)

    uvicorn.run(
        create_app(access_control, identity, signer),
        host=config.host,
        port=config.port,
        log_level="info",
    )
    return 0


def main():
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
