# MIT License
# Copyright (c) 2025 Hashborn

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel, Field
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from typing import Optional
from ...protocol.types.op import Operation, OperationReceipt
from ...protocol.types.common import (
    ProtocolError, NotFound, AccountNotFound, Unauthorized, AlreadyExists, ConcurrentUpdate, InvalidNonce
)
from ...protocol.config.params import SECURITY_TXT
from ..core.service import StakingService
from ..observability.metrics import metrics_registry, update_metrics
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="StakePool Node RPC")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
service: Optional[StakingService] = None

class FaucetRequest(BaseModel):
    owner: str
    asset_id: str
    amount: int = Field(gt=0)

def _service() -> StakingService:
    if not service:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return service

def _http_error(e: ProtocolError) -> HTTPException:
    code = getattr(e, "code", "PROTOCOL_ERROR")
    if isinstance(e, (NotFound, AccountNotFound)):
        status = 404
    elif isinstance(e, Unauthorized):
        status = 403
    elif isinstance(e, (AlreadyExists, ConcurrentUpdate, InvalidNonce)):
        status = 409
    else:
        status = 400
    return HTTPException(status_code=status, detail={"code": code, "message": str(e)})

@app.get("/status")
async def get_status():
    svc = _service()
    return {
        "network": svc.config.network_id,
        "time": svc.clock.now(),
        "pools": len(svc.list_pools()),
        "rules": {
            "min_stake": svc.config.min_stake,
            "min_lock_days": svc.config.min_lock_days,
            "lock_step_days": svc.config.lock_step_days,
            "cooldown_days": svc.config.cooldown_days,
        },
    }

@app.get("/pool/{asset_id}")
async def get_pool(asset_id: str):
    svc = _service()
    pool = svc.get_pool(asset_id)
    if not pool:
        raise HTTPException(status_code=404, detail="Pool not found")
    return {
        **pool.model_dump(),
        "custody_balance": str(svc.balance_of_account(pool.custody_account)),
    }

@app.get("/stake/{address}")
async def get_stake(address: str):
    stake = _service().get_stake(address)
    if not stake:
        raise HTTPException(status_code=404, detail="Stake not found")
    return stake

@app.get("/stakes/{owner}")
async def get_stakes(owner: str, asset_id: Optional[str] = None):
    stakes = _service().list_stakes(owner=owner, asset_id=asset_id)
    return {"owner": owner, "stakes": stakes}

@app.get("/balance/{owner}/{asset_id}")
async def get_balance(owner: str, asset_id: str):
    svc = _service()
    return {
        "owner": owner,
        "asset_id": asset_id,
        # str: u64 values exceed JS safe integers
        "balance": str(svc.balance_of(owner, asset_id)),
    }

@app.get("/nonce/{address}")
async def get_nonce(address: str):
    return {"address": address, "nonce": _service().get_nonce(address)}

@app.get("/op/{op_hash}")
async def get_operation(op_hash: str):
    record = _service().get_operation(op_hash)
    if not record:
        raise HTTPException(status_code=404, detail="Operation not found")
    return record

@app.post("/op/send", response_model=OperationReceipt)
def send_operation(op: Operation):
    try:
        return _service().apply_operation(op)
    except ProtocolError as e:
        logger.warning(f"Rejected {op.op_type.value} from {op.caller}: {e}")
        raise _http_error(e) from e

@app.post("/faucet")
def faucet(req: FaucetRequest):
    svc = _service()
    if not svc.config.faucet_enabled:
        raise HTTPException(status_code=403, detail="Faucet disabled on this network")
    if req.amount > svc.config.faucet_max_amount:
        raise HTTPException(status_code=400, detail=f"Faucet limit is {svc.config.faucet_max_amount}")
    try:
        balance = svc.mint(req.owner, req.asset_id, req.amount)
    except ProtocolError as e:
        raise _http_error(e) from e
    logger.info(f"Faucet: {req.amount} {req.asset_id} to {req.owner}")
    return {"owner": req.owner, "asset_id": req.asset_id, "balance": str(balance)}

@app.get("/metrics")
async def get_metrics():
    """Prometheus scrape endpoint."""
    update_metrics(_service())
    return Response(content=generate_latest(metrics_registry), media_type=CONTENT_TYPE_LATEST)

@app.get("/.well-known/security.txt", response_class=PlainTextResponse)
async def security_txt():
    lines = [f"{key.replace('_', '-').title()}: {value}" for key, value in SECURITY_TXT.items()]
    return "\n".join(lines) + "\n"
