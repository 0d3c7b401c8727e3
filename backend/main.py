"""Run the replay registry API with uvicorn.

The replay storage directory is created up front so the first upload does
not race on it.
"""

import uvicorn
from app.core.config import get_global_settings

if __name__ == "__main__":
    settings = get_global_settings()
    settings.replay_storage_dir.mkdir(parents=True, exist_ok=True)
    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
