"""
Bot status and control endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from .deps import get_engine, verify_api_key

router = APIRouter(prefix="/api", tags=["bot"])


class StrategySelection(BaseModel):
    name: str


@router.get("/status")
async def get_status(engine=Depends(get_engine)):
    """Engine status: positions, tracked pools, active strategy, in-flight orders"""
    return engine.get_status()


@router.get("/positions")
async def get_positions(engine=Depends(get_engine)):
    positions = engine.book.to_list()
    return {"positions": positions, "count": len(positions)}


@router.get("/events")
async def get_events(limit: int = Query(50, ge=1, le=200), engine=Depends(get_engine)):
    """Recent trade attempts, outcomes and skip reasons"""
    return {"events": engine.recent_events(limit)}


@router.get("/orders")
async def get_orders(limit: int = Query(50, ge=1, le=100), engine=Depends(get_engine)):
    return {"orders": engine.executor.get_order_history(limit)}


@router.get("/strategy")
async def get_strategy(engine=Depends(get_engine)):
    return engine.manager.to_dict()


@router.post("/strategy")
async def set_strategy(
    selection: StrategySelection,
    engine=Depends(get_engine),
    _: str = Depends(verify_api_key),
):
    """Switch the active strategy at runtime"""
    if not engine.manager.set_active_strategy(selection.name):
        raise HTTPException(status_code=404, detail=f"Strategy '{selection.name}' not found")
    return {"success": True, "active_strategy": engine.manager.active_strategy.value}


@router.put("/strategy/{name}/settings")
async def update_strategy_settings(
    name: str,
    settings: dict[str, Any],
    engine=Depends(get_engine),
    _: str = Depends(verify_api_key),
):
    """Update one strategy's parameters and persist them"""
    if name.lower() not in engine.manager.available_strategies():
        raise HTTPException(status_code=404, detail=f"Strategy '{name}' not found")
    if not engine.manager.update_strategy_settings(name, settings):
        raise HTTPException(status_code=400, detail="Invalid settings")
    return {"success": True, "strategy": engine.manager.to_dict()["strategies"][name.lower()]}
