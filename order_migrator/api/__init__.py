"""HTTP trigger (FastAPI)."""
