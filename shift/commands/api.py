"""``shift serve``: run the gateway under uvicorn."""

import logging

import uvicorn

from ..config.settings import Settings

logger = logging.getLogger(__name__)

APP_FACTORY = "shift.api.app:create_app"


async def run_api_server(host: str, port: int, log_level: str = "info") -> int:
    problems = Settings.validate()
    if problems:
        for problem in problems:
            logger.error(f"Configuration problem: {problem}")
        return 1

    # The factory runs inside uvicorn's loop so the gateway's clients bind to it
    config = uvicorn.Config(
        APP_FACTORY,
        factory=True,
        host=host,
        port=port,
        log_level=log_level,
        access_log=False,  # RequestIDMiddleware already logs each request
    )
    logger.info(f"SHIFT gateway listening on http://{host}:{port}")
    await uvicorn.Server(config).serve()
    return 0
