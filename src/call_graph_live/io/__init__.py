"""Transport collaborators: ingestion gateway, broadcast channel and producer client."""
