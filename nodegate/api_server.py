"""
NodeGate API Server

FastAPI application exposing the access-control gateway.

Endpoints:
- GET  /health                       - Health check (public)
- GET  /node/info                    - Node id and chain account
- POST /gateway/is-node-id-allowed   - Check a node id against the allowlist
- POST /gateway/is-domain-allowed    - Check a domain against the allowlist
- POST /gateway/add-node-id          - Allow a node id
- POST /gateway/remove-node-id       - Revoke a node id
- POST /gateway/add-domain           - Allow a domain
- POST /gateway/remove-domain        - Revoke a domain

Every route except /health passes through the gateway check
(nodeId / Origin headers) before its handler runs.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from loguru import logger

from nodegate.auth.access_control import (
    AccessControlState,
    is_valid_domain,
    normalize_domain,
    normalize_node_id,
    verify_gateway_access,
)
from nodegate.exceptions import PersistenceError
from nodegate.keystore.signer import ChainSigner
from nodegate.node.identity import NodeIdentity, is_valid_node_id


# =============================================================================
# API Models
# =============================================================================

class NodeIdRequest(BaseModel):
    """Request body carrying a node id."""

    node_id: str = Field(..., description="Hex-encoded ed25519 node id")


class DomainRequest(BaseModel):
    """Request body carrying a domain or origin."""

    domain: str = Field(..., description="Domain, optionally with http(s) scheme")


class AllowedResponse(BaseModel):
    allowed: bool


class MessageResponse(BaseModel):
    message: str


class NodeInfoResponse(BaseModel):
    """This node's identity."""

    node_id: Optional[str]
    chain_account: Optional[str]
    allowed_node_ids: int
    allowed_domains: int


# =============================================================================
# Helpers
# =============================================================================

def get_access_control(request: Request) -> AccessControlState:
    return request.app.state.access_control


def _require_node_id(node_id: str) -> str:
    node_id = node_id.strip()
    if not node_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="nodeId cannot be empty")
    if not is_valid_node_id(node_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="nodeId is not a valid NodeId")
    return normalize_node_id(node_id)


def _require_domain(domain: str) -> str:
    if not domain.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="domain cannot be empty")
    normalized = normalize_domain(domain) if is_valid_domain(domain) else None
    if normalized is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid domain format")
    return normalized


def _persistence_failed(e: PersistenceError) -> HTTPException:
    logger.error("Allowlist update failed: {}", e)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Failed to persist allowlist change"
    )


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()
gateway = APIRouter(prefix="/gateway", dependencies=[Depends(verify_gateway_access)])


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "nodegate-api",
        "timestamp": datetime.utcnow().isoformat(),
        "gateway_initialized": getattr(request.app.state, "access_control", None) is not None,
    }


@router.get(
    "/node/info",
    response_model=NodeInfoResponse,
    dependencies=[Depends(verify_gateway_access)],
)
async def node_info(request: Request):
    """Get this node's id and chain account."""
    identity: Optional[NodeIdentity] = request.app.state.identity
    signer: Optional[ChainSigner] = request.app.state.signer
    access_control = get_access_control(request)

    return NodeInfoResponse(
        node_id=identity.node_id if identity else None,
        chain_account=signer.ss58_address if signer else None,
        allowed_node_ids=len(access_control.node_ids),
        allowed_domains=len(access_control.domains),
    )


@gateway.post("/is-node-id-allowed", response_model=AllowedResponse)
async def is_node_id_allowed(body: NodeIdRequest, request: Request):
    """Check whether a node id is allowed."""
    node_id = _require_node_id(body.node_id)
    return AllowedResponse(allowed=get_access_control(request).is_node_allowed(node_id))


@gateway.post("/is-domain-allowed", response_model=AllowedResponse)
async def is_domain_allowed(body: DomainRequest, request: Request):
    """Check whether a domain is allowed."""
    domain = _require_domain(body.domain)
    return AllowedResponse(allowed=get_access_control(request).is_domain_allowed(domain))


@gateway.post("/add-node-id", response_model=MessageResponse)
async def add_node_id(body: NodeIdRequest, request: Request):
    """Allow a node id."""
    node_id = _require_node_id(body.node_id)
    try:
        await get_access_control(request).add_node(node_id)
    except PersistenceError as e:
        raise _persistence_failed(e)

    logger.info("✅ Allowed node id: {}...", node_id[:16])
    return MessageResponse(message="Node ID added successfully")


@gateway.post("/remove-node-id", response_model=MessageResponse)
async def remove_node_id(body: NodeIdRequest, request: Request):
    """Revoke a node id."""
    node_id = _require_node_id(body.node_id)
    try:
        await get_access_control(request).remove_node(node_id)
    except PersistenceError as e:
        raise _persistence_failed(e)

    logger.info("🗑️ Revoked node id: {}...", node_id[:16])
    return MessageResponse(message="Node ID removed successfully")


@gateway.post("/add-domain", response_model=MessageResponse)
async def add_domain(body: DomainRequest, request: Request):
    """Allow a domain."""
    domain = _require_domain(body.domain)
    try:
        await get_access_control(request).add_domain(domain)
    except PersistenceError as e:
        raise _persistence_failed(e)

    logger.info("✅ Allowed domain: {}", domain)
    return MessageResponse(message="Domain added successfully")


@gateway.post("/remove-domain", response_model=MessageResponse)
async def remove_domain(body: DomainRequest, request: Request):
    """Revoke a domain."""
    domain = _require_domain(body.domain)
    try:
        await get_access_control(request).remove_domain(domain)
    except PersistenceError as e:
        raise _persistence_failed(e)

    logger.info("🗑️ Revoked domain: {}", domain)
    return MessageResponse(message="Domain removed successfully")


# =============================================================================
# FastAPI Application
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan."""
    access_control: AccessControlState = app.state.access_control
    logger.info("✅ NodeGate API ready")
    logger.info("   Data dir: {}", access_control.storage_dir)
    logger.info("   Allowed node ids: {}", len(access_control.node_ids))
    logger.info("   Allowed domains: {}", len(access_control.domains))

    yield

    logger.info("✅ NodeGate API shutdown complete")


def create_app(
    access_control: AccessControlState,
    identity: Optional[NodeIdentity] = None,
    signer: Optional[ChainSigner] = None,
) -> FastAPI:
    """
    Build the API around an already-loaded access control state.

    The state must be fully initialized here, before the server starts
    accepting connections.
    """
    app = FastAPI(
        title="NodeGate API",
        description="Access-control gateway for a peer-to-peer node",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.access_control = access_control
    app.state.identity = identity
    app.state.signer = signer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.include_router(gateway)
    return app
