import logging
from pathlib import Path

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ..deps import get_journey_path
from ..journey import load_journey_text, parse_journey_info
from ..schemas import JourneySummaryResponse


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/summary", response_model=JourneySummaryResponse, response_model_exclude_none=True)
async def journey_summary(journey_path: Path = Depends(get_journey_path)):
    try:
        summary = parse_journey_info(load_journey_text(journey_path))
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Failed to read journey summary from %s: %s", journey_path, e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "無法讀取行程資訊",
                "message": "請確認 journey.txt 文件存在且格式正確",
            },
        )

    return JourneySummaryResponse(success=True, summary=summary, message="行程摘要讀取成功")
