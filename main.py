import os

import uvicorn

from planner.app import app

if __name__ == "__main__":
  host = os.getenv("PLANNER_HOST", "0.0.0.0")
  port = int(os.getenv("PLANNER_PORT", "8000"))
  uvicorn.run(app, host=host, port=port)
