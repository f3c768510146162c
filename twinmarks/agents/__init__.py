"""Oracle-backed services: gateway, labeling, categories, RAG, tags, analysis."""
