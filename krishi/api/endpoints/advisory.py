# krishi/api/endpoints/advisory.py - Advisory, price and demo question endpoints
import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from krishi.models.advisory import AdviseRequest, AdvisoryResponse, DemoQuestion, Location, PriceQueryResult

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/advise", response_model=AdvisoryResponse, tags=["Advisory"])
async def advise(request_body: AdviseRequest, request: Request):
    """
    Answers a farming question in any supported language.
    The response always carries a confidence score, factual basis and disclaimers.
    """
    pipeline = request.app.state.pipeline
    try:
        return await pipeline.advise(request_body.query, request_body.language)
    except Exception as e:
        logger.error(f"A critical error occurred in the advise endpoint: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An internal server error occurred.")


@router.get("/prices", response_model=PriceQueryResult, tags=["Market"])
async def get_prices(
    request: Request,
    crop: Optional[str] = Query(None, min_length=2, description="Crop name, e.g. onion"),
    state: Optional[str] = Query(None),
    district: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Free-text price question, e.g. 'onion rate in Nashik'"),
):
    """Current mandi prices for one crop; found=false with an explanation when none exist."""
    pipeline = request.app.state.pipeline
    location = Location(state=state, district=district) if (state or district) else None
    if q:
        asked_crop, asked_location = pipeline.price_fetcher.extract_crop_and_location(q)
        crop = crop or asked_crop
        location = location or asked_location
    if not crop:
        raise HTTPException(status_code=422, detail="Name a crop, either as 'crop' or inside 'q'.")
    try:
        return await pipeline.price_fetcher.fetch_prices(crop, location)
    except Exception as e:
        logger.error(f"Price lookup failed for {crop}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch prices")


@router.get("/demo-questions", response_model=List[DemoQuestion], tags=["Advisory"])
async def demo_questions(
    request: Request,
    language: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
):
    return request.app.state.pipeline.demo_matcher.all_questions(language=language, category=category)
