#!/usr/bin/env python3
"""
Startup script for the pairchat relay
"""

import uvicorn
import sys

from . import config


def main():
    """Main startup function"""
    print("💬 Starting pairchat relay...")

    print(f"📍 Server will run on {config.HOST}:{config.PORT}")
    print(f"🔄 Auto-reload: {'enabled' if config.RELOAD else 'disabled'}")
    print(f"🌐 WebSocket endpoint: ws://{config.HOST}:{config.PORT}/ws")
    print(f"📁 Uploads: {config.UPLOADS_DIR}")
    print(f"👥 Open http://localhost:{config.PORT} in two tabs/browsers to try the 1:1 chat")
    print("🚀 Starting server...")

    try:
        uvicorn.run(
            "pairchat.main:app",
            host=config.HOST,
            port=config.PORT,
            reload=config.RELOAD,
            log_level=config.LOG_LEVEL,
            ws_max_size=config.MAX_PAYLOAD,
        )
    except KeyboardInterrupt:
        print("\n🛑 Server stopped by user")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
