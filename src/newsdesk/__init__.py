"""Category news ingestion with cache-first progressive refresh."""
