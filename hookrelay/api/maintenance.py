"""On-demand runs of the periodic retry jobs."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from hookrelay.api.deps import get_app_settings, get_submit
from hookrelay.config import Settings
from hookrelay.database import get_db
from hookrelay.schemas import ScheduleResult, SweepResult
from hookrelay.services.queue import SubmitFn
from hookrelay.services.retry_scheduler import RetryScheduler
from hookrelay.services.retry_sweep import RetrySweep

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@router.post("/retry-sweep", response_model=SweepResult)
async def run_retry_sweep(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    submit: SubmitFn = Depends(get_submit),
):
    submitted = await RetrySweep(db, settings, submit=submit).run()
    return SweepResult(submitted=submitted)


@router.post("/schedule-pending", response_model=ScheduleResult)
async def run_schedule_pending(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    scheduled = await RetryScheduler(db, settings).schedule_all_pending_retries()
    return ScheduleResult(scheduled=scheduled)
