#!/usr/bin/env python3
"""
Create tables (same process, same DATABASE_URL), then seed, then uvicorn.
"""
import os
import sys

from tripwise.db.session import Base, engine
from tripwise.models import booking, bus, operator, route, trip  # noqa: F401

# 1) Create tables (schema migrations are managed outside this service)
Base.metadata.create_all(bind=engine)

# 2) Seed demo data when the database is empty
from tripwise.seed import run as run_seed
run_seed()

# 3) Start uvicorn (replace current process)
os.execv(
    sys.executable,
    [sys.executable, "-m", "uvicorn", "tripwise.main:app", "--host", "0.0.0.0", "--port", "8000"],
)
