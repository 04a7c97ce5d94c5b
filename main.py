"""Entry point for running the FastAPI backend server."""

import os

import uvicorn
from contest_proctor.app import app


def main():
    """Run the FastAPI application."""
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level="info"
    )


if __name__ == "__main__":
    main()
