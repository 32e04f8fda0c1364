"""Photo ingestion, derivative generation and RAW adjustment pipeline."""
