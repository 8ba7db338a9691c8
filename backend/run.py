"""Run the ReplyGate API server (the worker runs separately: ``replygate worker``)."""

import os

import uvicorn

from replygate.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "backend.main:create_app",
        factory=True,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
        log_level=settings.log_level.lower(),
        reload=os.environ.get("REPLYGATE_ENV", "development") == "development",
    )
