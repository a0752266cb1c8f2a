"""
Nimbus Weather Backend — FastAPI
Modular entry point. All logic is split across:
  config.py, models.py, errors.py, budget.py, cache.py, data_fetchers.py,
  insights.py, orchestrator.py, mock_data.py, routes.py
"""

import logging

from config import LOG_LEVEL

logging.basicConfig(level=LOG_LEVEL)

from routes import app  # noqa: F401,E402

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
