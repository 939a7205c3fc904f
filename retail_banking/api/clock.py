"""
Clock and time simulation endpoints
"""

from fastapi import APIRouter, Depends

from ..access import Session
from ..system import BankingSystem
from .auth import get_session, get_system
from .schemas import AdvanceTimeRequest, EnableSimulationRequest


router = APIRouter()


def _clock_state(system: BankingSystem):
    return {
        "now": system.clock.now().isoformat(),
        "simulated": system.clock.is_simulated,
    }


@router.get("")
async def get_clock(
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    system.access.require_login(session)
    return _clock_state(system)


@router.post("/simulation")
async def enable_simulation(
    request: EnableSimulationRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    """Switch to simulated time (Admin only)"""
    start = request.start or system.clock.now()
    system.service.enable_time_simulation(session, start)
    return _clock_state(system)


@router.post("/advance")
async def advance_time(
    request: AdvanceTimeRequest,
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    system.service.advance_time(session, request.days)
    return _clock_state(system)


@router.delete("/simulation")
async def disable_simulation(
    session: Session = Depends(get_session),
    system: BankingSystem = Depends(get_system)
):
    system.service.disable_time_simulation(session)
    return _clock_state(system)
