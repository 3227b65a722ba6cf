import uvicorn

from ftc_assistant.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "ftc_assistant.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",  # Only reload in development
        log_level=settings.log_level.lower(),
    )
