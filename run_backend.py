#!/usr/bin/env python
# run_backend.py
"""
FastAPI Backend Launcher
========================

Run this script to start the dashboard backend.

Usage:
    python run_backend.py              # Default: localhost:8000
    python run_backend.py --port 8080  # Custom port
    python run_backend.py --host 0.0.0.0  # Allow external access
    python run_backend.py --reload     # Auto-reload on code changes

The backend provides:
- REST API endpoints at http://localhost:8000/api/
- API documentation at http://localhost:8000/docs
"""

import argparse

import uvicorn


def main():
    parser = argparse.ArgumentParser(description="Start the AI Market Desk backend")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload on code changes")
    parser.add_argument("--log-level", default="info", choices=["debug", "info", "warning", "error"])

    args = parser.parse_args()

    print(f"""
╔══════════════════════════════════════════════════════════════╗
║                AI Market Desk - Backend                      ║
╠══════════════════════════════════════════════════════════════╣
║  Server:     http://{args.host}:{args.port}
║  API Docs:   http://{args.host}:{args.port}/docs
║  Health:     http://{args.host}:{args.port}/health
╚══════════════════════════════════════════════════════════════╝
    """)

    # One process only: the gateway allows a single connection per client
    uvicorn.run(
        "backend.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1,
        log_level=args.log_level,
        access_log=True
    )


if __name__ == "__main__":
    main()
