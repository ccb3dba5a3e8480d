from __future__ import annotations

import logging

from fastapi import FastAPI

from .config import PLANNER_LOG_LEVEL
from .routes import router


def create_app() -> FastAPI:
  logging.basicConfig(
      level=getattr(logging, PLANNER_LOG_LEVEL, logging.INFO),
      format="%(asctime)s %(levelname)s %(name)s: %(message)s",
  )
  app = FastAPI(title="Task Slot Planner")
  app.include_router(router)
  return app


app = create_app()
