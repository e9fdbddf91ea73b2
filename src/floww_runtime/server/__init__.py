"""Container host target: a FastAPI app over the runtime service."""
