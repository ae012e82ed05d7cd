"""
Widget API Router

The quote currently shown on the widget surface. Never blocks on the
database: it reads the Redis slot written by the delivery batch.
"""

from fastapi import APIRouter

from schemas import WidgetQuoteResponse
from services.quote_widget_cache import read_widget_quote

router = APIRouter(prefix="/v1/widget", tags=["Widget"])


@router.get("/quote", response_model=WidgetQuoteResponse)
def get_widget_quote():
    payload, state = read_widget_quote()
    return WidgetQuoteResponse(state=state.value, **(payload or {}))
