"""
Entrypoint module for uvicorn.

Run as:

    uvicorn ifrates.main:app --reload
"""

from ifrates.api import app  # FastAPI app
