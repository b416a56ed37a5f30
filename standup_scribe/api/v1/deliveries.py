"""
Delivery API Endpoints

Manual resend of failed deliveries and an on-demand queue tick
"""
from datetime import date as Date
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.auth import get_current_operator
from ...database import get_db
from ...models.delivery import Destination
from ...services.delivery_service import DeliveryService
from ...utils.time import Clock
from ...workers.delivery import DeliveryWorker
from .deps import get_clock, get_delivery_worker, get_publishers

router = APIRouter(dependencies=[Depends(get_current_operator)])


@router.post("/tick", response_model=dict)
async def run_delivery_tick(
    worker: DeliveryWorker = Depends(get_delivery_worker)
):
    """Process due delivery jobs now instead of waiting for the worker"""
    processed = await worker.tick()
    return {"processed": processed}


@router.post("/{workspace_id}/{run_date}/resend", response_model=dict)
async def resend_deliveries(
    workspace_id: str,
    run_date: Date,
    destination: Optional[Destination] = None,
    db: AsyncSession = Depends(get_db),
    publishers: dict = Depends(get_publishers),
    clock: Clock = Depends(get_clock)
):
    """Reset FAILED and RETRYING jobs of a run back to PENDING"""

    service = DeliveryService(db, publishers, clock=clock)
    reset = await service.resend(workspace_id, run_date, destination.value if destination else None)
    return {"reset": reset}
