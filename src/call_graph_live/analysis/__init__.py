"""Call graph model, accumulation and export."""
