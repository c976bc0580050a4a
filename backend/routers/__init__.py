# backend/routers/__init__.py
"""API Routers"""

from .market_data import router as market_data_router
from .analyze import router as analyze_router

__all__ = [
    'market_data_router',
    'analyze_router'
]
