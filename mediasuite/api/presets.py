from fastapi import APIRouter

from mediasuite.render import effects, motion, transitions
from mediasuite.schemas.render import PresetsResponse

router = APIRouter()


@router.get("/presets", response_model=PresetsResponse)
async def list_presets() -> PresetsResponse:
    """Known motion, transition and effect ids."""
    return PresetsResponse(
        movements=motion.list_presets(),
        transitions=transitions.list_transitions(),
        effects=effects.list_effects(),
    )
