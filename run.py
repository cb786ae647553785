#!/usr/bin/env python3
"""
KodBank Ledger Entry Point

Starts the FastAPI server with the ledger and session engine.
"""

import sys

from kodbank.api import run_server
from kodbank.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting KodBank ledger service...")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    
    try:
        run_server()
    except KeyboardInterrupt:
        print("\nShutting down KodBank ledger service...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
