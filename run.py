#!/usr/bin/env python3
"""
BankPro Backend Entry Point

Starts the FastAPI server on the configured host and port (5000 by default).
"""

import sys

from bankpro.api import run_server
from bankpro.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("🏦 Starting BankPro backend...")
    print(f"💾 Storage: {config.storage_backend} ({config.database_path})")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug=config.environment == "development")
    except KeyboardInterrupt:
        print("\n👋 Shutting down BankPro backend...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
