"""
AI Market Desk
==============

Gemini-picked stocks with live quotes from the vendor gateway.

- marketdesk.websocket: quote gateway protocol client and market data store
- marketdesk.analysis: market news summarisation via Gemini
"""

__version__ = "1.0.0"
