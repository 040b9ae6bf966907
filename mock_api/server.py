from __future__ import annotations

import base64
import binascii
import json
import time
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from solders.transaction import VersionedTransaction

from mock_api.data_seed import generate_seed
from strategy_engine.data.jupiter.provider import build_offline_swap_transaction

app = FastAPI(title="strategy-engine mock upstream")
seed = generate_seed()

app.state.seed = seed

SEND_ERRORS: Dict[str, Dict[str, Any]] = {
    "slippage": {
        "code": -32002,
        "message": "Transaction simulation failed: Error processing Instruction 3: custom program error: 0x1771",
        "data": {"err": {"InstructionError": [3, {"Custom": 6001}]}, "logs": []},
    },
    "blockhash": {
        "code": -32002,
        "message": "Transaction simulation failed: Blockhash not found",
        "data": {"err": "BlockhashNotFound", "logs": []},
    },
}

SWAP_FEE = 0.0025


def _fresh_metrics() -> Dict[str, int]:
    return {
        "jupiter_quote": 0,
        "jupiter_swap": 0,
        "birdeye_ohlcv": 0,
        "birdeye_overview": 0,
        "birdeye_search": 0,
        "birdeye_new_listing": 0,
        "rpc": 0,
    }


def reset_metrics() -> None:
    app.state.metrics = _fresh_metrics()
    app.state.signatures = {}
    app.state.pending_polls = 0
    app.state.send_error = None


reset_metrics()


class SwapRequest(BaseModel):
    quote_response: Dict[str, Any] = Field(alias="quoteResponse")
    user_public_key: str = Field(alias="userPublicKey")
    wrap_and_unwrap_sol: bool = Field(default=True, alias="wrapAndUnwrapSol")
    prioritization_fee_lamports: Any = Field(default="auto", alias="prioritizationFeeLamports")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


def _no_route() -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Could not find any route", "errorCode": "COULD_NOT_FIND_ANY_ROUTE"},
    )


def _token(address: str) -> Optional[Dict[str, Any]]:
    return seed["tokens"].get(address)


def _envelope(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": data}


@app.get("/jupiter/quote")
async def jupiter_quote(
    inputMint: str,
    outputMint: str,
    amount: int,
    slippageBps: int = 50,
    swapMode: str = "ExactIn",
):
    app.state.metrics["jupiter_quote"] += 1
    if amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be positive")
    token_in = _token(inputMint)
    token_out = _token(outputMint)
    if token_in is None or token_out is None or not token_out["liquidity"]:
        return _no_route()

    value_usd = amount / 10 ** int(token_in["decimals"]) * float(token_in["price"])
    out_units = value_usd / float(token_out["price"]) * (1.0 - SWAP_FEE)
    out_amount = int(out_units * 10 ** int(token_out["decimals"]))
    if out_amount <= 0:
        return _no_route()
    price_impact = min(0.5, value_usd / max(float(token_out["liquidity"]), 1.0))
    threshold = int(out_amount * (1.0 - slippageBps / 10_000))
    fee_amount = int(amount * SWAP_FEE)

    return {
        "inputMint": inputMint,
        "inAmount": str(amount),
        "outputMint": outputMint,
        "outAmount": str(out_amount),
        "otherAmountThreshold": str(threshold),
        "swapMode": swapMode,
        "slippageBps": slippageBps,
        "priceImpactPct": f"{price_impact:.6f}",
        "routePlan": [
            {
                "swapInfo": {
                    "ammKey": "MockAmm1111111111111111111111111111111111111",
                    "label": "Mock AMM",
                    "inputMint": inputMint,
                    "outputMint": outputMint,
                    "inAmount": str(amount),
                    "outAmount": str(out_amount),
                    "feeAmount": str(fee_amount),
                    "feeMint": inputMint,
                },
                "percent": 100,
            }
        ],
        "contextSlot": 250_000_000,
        "timeTaken": 0.004,
    }


@app.post("/jupiter/swap")
async def jupiter_swap(request: SwapRequest) -> Dict[str, Any]:
    app.state.metrics["jupiter_swap"] += 1
    seed_bytes = json.dumps(
        [request.quote_response, request.user_public_key, app.state.metrics["jupiter_swap"]],
        sort_keys=True,
        default=str,
    ).encode("utf-8")
    try:
        transaction = build_offline_swap_transaction(request.user_public_key, seed_bytes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"invalid userPublicKey: {exc}")
    return {"swapTransaction": transaction, "lastValidBlockHeight": 230_000_150, "prioritizationFeeLamports": 5000}


@app.get("/defi/ohlcv")
async def birdeye_ohlcv(address: str, type: str = "1H", time_from: int = 0, time_to: int = 0) -> Dict[str, Any]:
    app.state.metrics["birdeye_ohlcv"] += 1
    candles = seed["candles"].get(address)
    if candles is None:
        return _envelope({"items": []})
    items = [
        {
            "o": c["o"],
            "h": c["h"],
            "l": c["l"],
            "c": c["c"],
            "v": c["v"],
            "unixTime": c["t"],
            "address": address,
            "type": type,
        }
        for c in candles
    ]
    return _envelope({"items": items})


@app.get("/defi/token_overview")
async def birdeye_token_overview(address: str) -> Dict[str, Any]:
    app.state.metrics["birdeye_overview"] += 1
    token = _token(address)
    if token is None:
        return {"success": False, "message": f"token {address} not found"}
    return _envelope(dict(token))


@app.get("/defi/token_search")
async def birdeye_token_search(keyword: str, limit: int = 10) -> Dict[str, Any]:
    app.state.metrics["birdeye_search"] += 1
    needle = keyword.strip().lower()
    matches = [
        dict(token)
        for token in seed["tokens"].values()
        if needle in str(token["symbol"]).lower() or needle in str(token["name"]).lower()
    ]
    matches.sort(key=lambda token: -float(token["liquidity"] or 0.0))
    return _envelope({"items": [{"type": "token", "result": matches[:limit]}]})


@app.get("/defi/v2/tokens/new_listing")
async def birdeye_new_listing(limit: int = 20) -> Dict[str, Any]:
    app.state.metrics["birdeye_new_listing"] += 1
    now = int(time.time())
    items: List[Dict[str, Any]] = []
    for listing in seed["listings"][:limit]:
        item = {key: value for key, value in listing.items() if key != "age_minutes"}
        item["listingTime"] = now - int(listing["age_minutes"]) * 60
        items.append(item)
    return _envelope({"items": items})


def _rpc_ok(request_id: Any, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _rpc_error(request_id: Any, error: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": error}


def _send_transaction(request_id: Any, params: List[Any]) -> Dict[str, Any]:
    if app.state.send_error:
        return _rpc_error(request_id, SEND_ERRORS[app.state.send_error])
    try:
        raw = base64.b64decode(params[0])
        signature = str(VersionedTransaction.from_bytes(raw).signatures[0])
    except (IndexError, binascii.Error, ValueError) as exc:
        return _rpc_error(request_id, {"code": -32602, "message": f"failed to deserialize transaction: {exc}"})
    app.state.signatures[signature] = 0
    return _rpc_ok(request_id, signature)


def _signature_statuses(request_id: Any, params: List[Any]) -> Dict[str, Any]:
    value: List[Optional[Dict[str, Any]]] = []
    for signature in params[0] if params else []:
        if signature not in app.state.signatures:
            value.append(None)
            continue
        app.state.signatures[signature] += 1
        settled = app.state.signatures[signature] > app.state.pending_polls
        value.append(
            {
                "slot": 250_000_001,
                "confirmations": None if settled else 0,
                "err": None,
                "confirmationStatus": "confirmed" if settled else "processed",
            }
        )
    return _rpc_ok(request_id, {"context": {"slot": 250_000_002}, "value": value})


def _parsed_account(request_id: Any, params: List[Any]) -> Dict[str, Any]:
    token = _token(params[0]) if params else None
    if token is None:
        return _rpc_ok(request_id, {"context": {"slot": 250_000_002}, "value": None})
    account = {
        "data": {
            "parsed": {"info": {"decimals": token["decimals"], "isInitialized": True}, "type": "mint"},
            "program": "spl-token",
        },
        "executable": False,
        "lamports": 1_461_600,
    }
    return _rpc_ok(request_id, {"context": {"slot": 250_000_002}, "value": account})


@app.post("/rpc")
@app.post("/rpc/")
async def solana_rpc(request: Request) -> Dict[str, Any]:
    app.state.metrics["rpc"] += 1
    body = await request.json()
    request_id = body.get("id")
    method = body.get("method")
    params = body.get("params") or []
    if method == "sendTransaction":
        return _send_transaction(request_id, params)
    if method == "getSignatureStatuses":
        return _signature_statuses(request_id, params)
    if method == "getParsedAccountInfo":
        return _parsed_account(request_id, params)
    if method == "getBalance":
        return _rpc_ok(request_id, {"context": {"slot": 250_000_002}, "value": 2_500_000_000})
    return _rpc_error(request_id, {"code": -32601, "message": "Method not found"})


__all__ = ["SEND_ERRORS", "app", "reset_metrics"]
