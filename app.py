"""
AMeDAS Latest - service entry point

    uvicorn app:app --port 8000
    python app.py
"""

import os

from amedas_latest import create_app

app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=False, log_level="info")
