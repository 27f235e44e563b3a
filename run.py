#!/usr/bin/env python3
"""
Shop Books Entry Point

Starts the FastAPI server with settings from the environment
(SHOPBOOKS_* variables or a .env file).
"""

import sys

import uvicorn

from shop_books.config import get_config
from shop_books.logging_config import setup_logging


def run_server(host: str, port: int, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "shop_books.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)

    print("🏪 Starting Shop Books...")
    print(f"💾 Storage: {config.storage_backend} ({config.database_path})")
    print(f"💰 Currency: {config.currency}, credit due after {config.credit_due_days} days")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        print("\n👋 Shutting down Shop Books...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
