# backend/__init__.py
"""
FastAPI Backend for AI Market Desk
==================================

Provides REST endpoints for:
- AI market analysis (Gemini)
- Live quotes from the gateway feed
- Feed status and diagnostics

Run with: python run_backend.py
"""

__version__ = "1.0.0"
