import os

from app import create_app
from config import Settings

settings = Settings()
app = create_app(settings)

# Gunicorn imports ``main:app``; this block is for local runs only
if __name__ == "__main__":
    app.run(
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 5000)),
        debug=settings.LOG_LEVEL.upper() == "DEBUG",
    )
