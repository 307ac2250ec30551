# backend/__main__.py
"""Run the API server: `python -m backend`."""
import uvicorn

from backend.app import app, settings


def main():
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
