"""SmartLab AI - clinic management API server."""

import uvicorn

from smartlab.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "smartlab.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
    )
