"""
Reporting endpoints
"""

import json
from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Depends
from fastapi.responses import PlainTextResponse

from .system import ShopBooks, get_shop_books
from .schemas import parse_date
from ..reporting import ReportFormat


router = APIRouter()


@router.get("/dashboard")
async def get_dashboard(
    today: Optional[str] = None,
    system: ShopBooks = Depends(get_shop_books)
):
    """Financial summary with the most overdue credits"""
    try:
        result = system.reporting_engine.dashboard_stats(parse_date(today))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return json.loads(system.reporting_engine.export_report(result, ReportFormat.JSON))


@router.get("/stock-movement")
async def get_stock_movement(
    start_date: str,
    end_date: Optional[str] = None,
    format: str = "json",
    system: ShopBooks = Depends(get_shop_books)
):
    """Opening, purchased, sold and closing stock per item"""
    try:
        result = system.reporting_engine.stock_movement(
            parse_date(start_date),
            parse_date(end_date) or date.today()
        )
        export_format = ReportFormat(format.lower())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if export_format == ReportFormat.CSV:
        return PlainTextResponse(
            system.reporting_engine.export_report(result, ReportFormat.CSV),
            media_type="text/csv"
        )
    return json.loads(system.reporting_engine.export_report(result, ReportFormat.JSON))
