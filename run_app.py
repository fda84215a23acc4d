#!/usr/bin/env python3
"""
Vendora Backend Runner
======================

Usage:
    python run_app.py                    # Development mode with auto-reload
    python run_app.py --mode prod        # Production mode
    python run_app.py --init-db          # Create tables, then exit
    python run_app.py --port 8001        # Custom port
    python run_app.py --host 127.0.0.1   # Custom host
"""

import argparse
import asyncio
import sys

def init_database():
    """Create all tables"""
    from app.core.database import init_db, close_db
    from app.core.monitoring import setup_logging

    async def _run():
        setup_logging()
        try:
            await init_db()
        finally:
            await close_db()

    asyncio.run(_run())
    print("Database tables created")

def run_main_app(host: str, port: int, reload: bool, workers: int):
    """Run the FastAPI application"""
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=reload,
        workers=1 if reload else workers,
        log_level="info"
    )

def main():
    from app.core.config import settings

    parser = argparse.ArgumentParser(
        description="Vendora Backend Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--mode",
        choices=["dev", "prod"],
        default="dev",
        help="Server mode (default: dev)"
    )
    parser.add_argument("--host", default=settings.HOST, help="Host to bind to")
    parser.add_argument("--port", type=int, default=settings.PORT, help="Port to bind to")
    parser.add_argument("--init-db", action="store_true", help="Create database tables and exit")

    args = parser.parse_args()

    if args.init_db:
        init_database()
        return 0

    run_main_app(args.host, args.port, reload=args.mode == "dev", workers=settings.WORKERS)
    return 0

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(0)
