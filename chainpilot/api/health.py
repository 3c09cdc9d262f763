from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..config import settings
from ..core.errors import ChainClientError
from ..core.execution.chain_client import ChainClient, get_chain_client

router = APIRouter()


def get_client() -> ChainClient:
    return get_chain_client()


@router.get("/healthz")
async def health_check(client: ChainClient = Depends(get_client)) -> Dict[str, Any]:
    """Health check that verifies the RPC node is reachable and on the configured chain"""

    node: Dict[str, Any] = {"rpcUrl": settings.rpc_url, "expectedChainId": settings.chain_id}
    try:
        chain_id = await client.get_chain_id()
    except ChainClientError as e:
        node.update({"status": "unavailable", "error": e.message})
    else:
        node["chainId"] = chain_id
        node["status"] = "healthy" if chain_id == settings.chain_id else "wrong_chain"

    return {
        "status": "healthy" if node["status"] == "healthy" else "degraded",
        "chain": settings.chain_name,
        "node": node,
        "signerConfigured": settings.has_signer,
    }
