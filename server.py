import sys
import asyncio
import uvicorn

from settings import get_settings

if __name__ == "__main__":
    # Playwright needs the Proactor loop on Windows
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

    settings = get_settings()
    # reload=False keeps the loop policy in this process
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
