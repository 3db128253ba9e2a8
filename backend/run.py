#!/usr/bin/env python3
# backend/run.py
"""
Local development server for the course ledger admin API.

Uses the SQLite database next to this file unless DATABASE_URL is set.
"""
import os
from pathlib import Path

import uvicorn

backend_dir = Path(__file__).parent
os.chdir(backend_dir)

if __name__ == "__main__":
    port = int(os.getenv("PORT", "8000"))
    print(f"Course ledger API on http://localhost:{port} (docs at /docs)")

    uvicorn.run("courseledger.main:app", host="0.0.0.0", port=port, reload=True, log_level="info")
