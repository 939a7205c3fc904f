#!/usr/bin/env python3
"""
Retail Banking Ledger Entry Point

Starts the FastAPI server with the retail banking system.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from retail_banking.api import run_server
from retail_banking.config import get_config
from retail_banking.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)

    print("🏦 Starting Retail Banking Ledger...")
    print(f"💾 Storage: {config.storage_backend} ({config.database_path})")
    print("💰 All financial calculations use Decimal precision")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        print("\n👋 Shutting down Retail Banking Ledger...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
