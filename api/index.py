"""
Serverless entry point for the voice relay.

Wraps the FastAPI application with Mangum. The lifespan hook is disabled
here, so providers are built lazily on the first voice turn and no
background sweeper runs between invocations.
"""

import os
import sys
from pathlib import Path

# Add project root to path for imports
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

os.environ.setdefault("ENVIRONMENT", "production")

from mangum import Mangum

from app import create_app

application = create_app(serverless=True)

# lifespan='off' keeps a bad configuration from crashing the function on cold start
handler = Mangum(application, lifespan="off")

__all__ = ["handler", "application"]
