from datetime import datetime

from fastapi import APIRouter
from models.schemas import GenerateRequest, GenerateResponse
from service.engine import TimetableEngine
from service.formatter import build_response
from service.model_builder import build_model

# Create a router instance
router = APIRouter()


@router.post("/generate", response_model=GenerateResponse)
def generate_timetable(request: GenerateRequest):
    """
    Generate weekly timetables from a faculty, subject, room and batch snapshot.

    Returns the best schedule plus up to `maxAlternatives - 1` alternatives.
    An unsatisfiable snapshot is rejected with 422 before any search runs;
    a search that runs out of budget returns a partial schedule flagged for
    review.
    """
    start_time = datetime.now()
    model = build_model(request, request.grid)
    schedules = TimetableEngine().generate_for_model(model, request.options)
    solve_time = (datetime.now() - start_time).total_seconds()
    return build_response(model, schedules, solve_time)
