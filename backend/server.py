#!/usr/bin/env python3
"""
API server for the Gold Portfolio Simulator.
Exposes the session controller over REST and pushes live ticks over WebSocket.
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from typing import Optional, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from config import SimulatorConfig
from errors import (
    InsufficientBalance,
    InvalidAmount,
    InvalidSide,
    NotFound,
    PortfolioError,
    SessionInactive,
)
from session_controller import SessionController

logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Gold Portfolio Simulator API",
    description="Simulated gold spot price, leveraged positions and wallet settlement",
    version="1.0.0",
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

controller: Optional[SessionController] = None

# WebSocket clients
ws_clients: Set[WebSocket] = set()

# In-flight broadcast tasks (the loop only keeps weak references)
broadcast_tasks: Set[asyncio.Task] = set()

# HTTP status per error family (first match wins)
ERROR_STATUS = [
    (SessionInactive, 409),
    (NotFound, 404),
    (InsufficientBalance, 400),
    (InvalidAmount, 400),
    (InvalidSide, 400),
]


def error_response(e: PortfolioError) -> JSONResponse:
    status = next((code for cls, code in ERROR_STATUS if isinstance(e, cls)), 400)
    return JSONResponse(e.to_dict(), status_code=status)


NOT_INITIALIZED = {"error": "Simulator not initialized", "code": "not_initialized"}


def not_initialized() -> JSONResponse:
    return JSONResponse(NOT_INITIALIZED, status_code=503)


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup():
    """Create the session controller and wire broadcasts"""
    global controller

    controller = SessionController(config=SimulatorConfig.from_env())

    controller.set_callbacks(
        on_tick=lambda state, point: schedule_broadcast(
            {"type": "tick", "data": {**state.to_dict(), "point": point.to_dict()}}
        ),
        on_settlement=lambda settlement: schedule_broadcast(
            {"type": "settlement", "data": settlement.to_dict()}
        ),
        on_status=lambda status: schedule_broadcast(
            {"type": "session", "data": status}
        ),
    )

    logger.info(f"Simulator ready (spot ${controller.config.initial_price:,.2f}/oz)")


@app.on_event("shutdown")
async def shutdown():
    """Stop the price ticker"""
    if controller:
        controller.deactivate(reason="shutdown")
    logger.info("Shutdown complete")


# ============================================================================
# BROADCAST HELPERS
# ============================================================================

async def broadcast(message: dict):
    """Broadcast message to all connected WebSocket clients"""
    if not ws_clients:
        return

    data = json.dumps(message)
    disconnected = set()

    # Clients may connect or disconnect while we await a send
    for ws in list(ws_clients):
        try:
            await ws.send_text(data)
        except Exception:
            disconnected.add(ws)

    # Clean up disconnected clients
    for ws in disconnected:
        ws_clients.discard(ws)


def schedule_broadcast(message: dict) -> asyncio.Task:
    """Broadcast from sync callbacks, holding a reference until the send completes"""
    task = asyncio.create_task(broadcast(message))
    broadcast_tasks.add(task)
    task.add_done_callback(broadcast_tasks.discard)
    return task


def snapshot() -> dict:
    """Everything a freshly connected client needs to render"""
    if not controller or not controller.is_active:
        return {"status": controller.get_status() if controller else None}

    return {
        "status": controller.get_status(),
        "price": controller.get_price_quote(),
        "wallets": [w.to_dict() for w in controller.get_wallets()],
        "positions": controller.list_position_views(),
        "transactions": [t.to_dict() for t in controller.list_transactions(limit=20)],
    }


# ============================================================================
# REST ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@app.get("/api/session")
async def get_session():
    """Get session status"""
    if not controller:
        return not_initialized()
    return controller.get_status()


@app.post("/api/session/activate")
async def activate_session(payload: Optional[dict] = None):
    """Activate the session (login) and start the price ticker"""
    if not controller:
        return not_initialized()

    session_id = (payload or {}).get("session_id")
    changed = controller.activate(session_id=session_id)
    return {"changed": changed, **controller.get_status()}


@app.post("/api/session/deactivate")
async def deactivate_session():
    """Deactivate the session (logout) and stop the price ticker"""
    if not controller:
        return not_initialized()

    changed = controller.deactivate(reason="logout")
    return {"changed": changed, **controller.get_status()}


@app.get("/api/price")
async def get_price():
    """Get current spot price per oz / gram / kg"""
    if not controller:
        return not_initialized()
    try:
        return controller.get_price_quote()
    except PortfolioError as e:
        return error_response(e)


@app.get("/api/chart/{horizon}")
async def get_chart(horizon: str):
    """Get chart series for 5M, 1H or 4H"""
    if not controller:
        return not_initialized()
    try:
        points = controller.get_chart_series(horizon)
    except PortfolioError as e:
        return error_response(e)
    return {"horizon": horizon.upper(), "points": [p.to_dict() for p in points]}


@app.get("/api/wallets")
async def get_wallets():
    """Get Physical and Trading wallets"""
    if not controller:
        return not_initialized()
    try:
        return {"wallets": [w.to_dict() for w in controller.get_wallets()]}
    except PortfolioError as e:
        return error_response(e)


@app.get("/api/transactions")
async def get_transactions(wallet: str = None, limit: int = None):
    """Get transaction history, newest first"""
    if not controller:
        return not_initialized()

    if wallet and wallet.lower() == "all":
        wallet = None

    try:
        txs = controller.list_transactions(wallet=wallet, limit=limit)
    except PortfolioError as e:
        return error_response(e)
    return {"transactions": [t.to_dict() for t in txs]}


@app.get("/api/positions")
async def get_positions():
    """Get open positions with live unrealized P/L"""
    if not controller:
        return not_initialized()
    try:
        return {"positions": controller.list_position_views()}
    except PortfolioError as e:
        return error_response(e)


@app.post("/api/positions")
async def open_position(payload: dict):
    """Open a Buy/Sell position at the current price"""
    if not controller:
        return not_initialized()
    try:
        position = controller.open_position(payload.get("side"), payload.get("size_grams"))
    except PortfolioError as e:
        return error_response(e)
    return {"status": "ok", "position": position.to_dict()}


@app.post("/api/positions/{position_id}/close")
async def close_position(position_id: str):
    """Close a position and realize its P/L"""
    if not controller:
        return not_initialized()
    try:
        settlement = controller.settle_position(position_id)
    except PortfolioError as e:
        return error_response(e)
    return {"status": "ok", **settlement.to_dict()}


@app.post("/api/funds/deposit")
async def deposit_funds(payload: dict):
    """Deposit USD into the Trading wallet"""
    if not controller:
        return not_initialized()
    try:
        tx = controller.deposit(payload.get("amount_usd"))
    except PortfolioError as e:
        return error_response(e)
    return {"status": "ok", "transaction": tx.to_dict()}


@app.post("/api/funds/withdraw")
async def withdraw_funds(payload: dict):
    """Withdraw USD from the Trading wallet"""
    if not controller:
        return not_initialized()
    try:
        tx = controller.withdraw(payload.get("amount_usd"))
    except PortfolioError as e:
        return error_response(e)
    return {"status": "ok", "transaction": tx.to_dict()}


@app.get("/api/physical/quote")
async def get_physical_quote(side: str = "Buy", grams: float = 10.0):
    """Quote a physical bullion buy/sell including commission"""
    if not controller:
        return not_initialized()
    try:
        return controller.quote_physical(side, grams).to_dict()
    except PortfolioError as e:
        return error_response(e)


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """
    WebSocket endpoint for real-time data.

    Clients receive:
    - init: Snapshot of price, wallets, positions and history
    - tick: New spot price and chart point (every tick)
    - settlement: Closed position with its transaction
    - session: Activation changes
    """
    await ws.accept()
    ws_clients.add(ws)
    logger.info(f"[WS] Client connected. Total: {len(ws_clients)}")

    try:
        await ws.send_json({"type": "init", "data": snapshot()})

        # Keep connection alive
        while True:
            try:
                data = await asyncio.wait_for(ws.receive_text(), timeout=30)
                msg = json.loads(data)

                if msg.get("type") == "ping":
                    await ws.send_json({"type": "pong"})

                elif msg.get("type") == "get_chart":
                    horizon = msg.get("horizon", "5M")
                    if not controller:
                        await ws.send_json({"type": "error", **NOT_INITIALIZED})
                        continue
                    try:
                        points = controller.get_chart_series(horizon)
                        await ws.send_json({
                            "type": "chart_snapshot",
                            "horizon": str(horizon).upper(),
                            "points": [p.to_dict() for p in points],
                        })
                    except PortfolioError as e:
                        await ws.send_json({"type": "error", **e.to_dict()})

            except asyncio.TimeoutError:
                # Send keepalive ping
                await ws.send_json({"type": "ping"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[WS] Error: {e}")
    finally:
        ws_clients.discard(ws)
        logger.info(f"[WS] Client disconnected. Total: {len(ws_clients)}")


# ============================================================================
# MAIN
# ============================================================================

def setup_logging(level: str = "INFO") -> None:
    """Console logging for the simulator modules"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(message)s",
    )


def main():
    """Run the server"""
    log_level = os.getenv("LOG_LEVEL", "info")
    setup_logging(log_level)
    uvicorn.run(
        "server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
