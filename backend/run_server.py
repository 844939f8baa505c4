#!/usr/bin/env python3
"""
Startup script for Uvicorn that respects log_level from the settings
"""
import os
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from heat.config import get_settings

settings = get_settings()

log_level = settings.log_level.lower()
# Disable access log when log level is ERROR
access_log = log_level not in ("error", "critical")

# Import uvicorn after reading config
import uvicorn

# Get port from environment or default
port = int(os.getenv("PORT", "3000"))
host = os.getenv("HOST", "0.0.0.0")

uvicorn.run(
    "heat.main:create_app",
    factory=True,
    host=host,
    port=port,
    log_level=log_level,
    access_log=access_log,
)
