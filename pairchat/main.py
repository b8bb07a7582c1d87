from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, UploadFile, File
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import asyncio
import json
import logging
import os
import uvicorn

from . import config
from .manager import PairingManager
from .storage import UploadStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(uploads_dir: Optional[str] = None, static_dir: Optional[str] = None) -> FastAPI:
    uploads_dir = uploads_dir or config.UPLOADS_DIR
    static_dir = static_dir or config.STATIC_DIR

    store = UploadStore(uploads_dir)
    manager = PairingManager(store=store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        store.ensure_dir()
        logger.info(f"1:1 chat relay starting up, uploads in {uploads_dir}")
        yield
        await manager.drain()
        logger.info("1:1 chat relay shutting down...")

    app = FastAPI(
        title="pairchat",
        description="WebSocket relay pairing two clients into a 1:1 chat",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.manager = manager
    app.state.store = store

    # Any origin, so other machines on the LAN can connect
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # WebSocket endpoint for chat clients
    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        conn = await manager.on_connect(websocket)
        if conn is None:
            return

        try:
            # Main message handling loop
            while True:
                try:
                    data = await websocket.receive_text()
                    message = json.loads(data)
                    await manager.dispatch(conn.id, message)
                except WebSocketDisconnect:
                    break
                except (json.JSONDecodeError, KeyError) as e:
                    # KeyError: binary frame where text was expected
                    logger.warning(f"Ignoring unreadable frame from {conn.id}: {e}")
        except Exception as e:
            logger.error(f"WebSocket error for {conn.id}: {e}")
        finally:
            await manager.on_disconnect(conn.id)

    @app.get("/")
    async def root():
        index = os.path.join(static_dir, "index.html")
        if os.path.isfile(index):
            return FileResponse(index)
        return {
            "message": "pairchat relay",
            "version": "1.0.0",
            "status": "running",
            "connections": len(manager.connections),
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "connections": len(manager.connections),
        }

    @app.get("/session")
    async def get_session():
        """Current connection table"""
        return {
            "connections": len(manager.connections),
            "members": manager.snapshot(),
        }

    @app.post("/upload")
    async def upload_file(file: UploadFile = File(...)):
        """Store a file in the uploads directory and return its public URL"""
        data = await file.read()
        try:
            name = await asyncio.to_thread(store.save, file.filename or "upload", data)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to store upload '{file.filename}': {e}")
            raise HTTPException(status_code=500, detail="Failed to store file")
        return {"filename": name, "url": f"/uploads/{name}"}

    app.mount("/uploads", StaticFiles(directory=uploads_dir, check_dir=False), name="uploads")

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "pairchat.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.RELOAD,
        log_level=config.LOG_LEVEL,
        ws_max_size=config.MAX_PAYLOAD,
    )
