"""
Serverless entry point for the Service Desk Core API
"""
import os
import sys

# Add parent directory to path
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if parent_dir not in sys.path:
    sys.path.insert(0, parent_dir)

# Serverless defaults: writable paths and no background scheduler
os.environ.setdefault("ENVIRONMENT", "production")
os.environ.setdefault("EMAIL_TEMPLATES_PATH", "/tmp/templates/email")
os.environ.setdefault("NOTIFICATION_PROCESS_INTERVAL", "0")

from mangum import Mangum
from src.main import app

# The queue lives in process memory, so lifespan must run to build it
handler = Mangum(app, lifespan="auto")
