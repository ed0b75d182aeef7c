"""HTTP surface: GitHub webhook router and the FastAPI application."""
