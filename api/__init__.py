"""FastAPI data-ingestion service for the sales performance dashboard."""
