import logging

import uvicorn

from api.settings import ServiceSettings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

if __name__ == "__main__":
    settings = ServiceSettings.from_env()
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    logger = logging.getLogger("run_server")
    logger.info("Starting Content Data Access API...")
    logger.info("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "api.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
