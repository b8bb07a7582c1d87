import os

# ---- Config ----
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
RELOAD = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").lower()

UPLOADS_DIR = os.getenv("PAIRCHAT_UPLOADS_DIR", os.path.join(os.getcwd(), "uploads"))
STATIC_DIR = os.getenv("PAIRCHAT_STATIC_DIR", os.getcwd())

# largest single WebSocket frame accepted (1e8, same ceiling for files and text)
MAX_PAYLOAD = int(os.getenv("PAIRCHAT_MAX_PAYLOAD", "100000000"))

# 1:1 sessions only
SESSION_CAPACITY = 2
