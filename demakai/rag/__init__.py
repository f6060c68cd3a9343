"""
RAG (Retrieval Augmented Generation) package for DemakAI.

Components:
    - query_expansion: Synonym expansion (lexical) and topic anchoring (vector)
    - embedder: Ollama embedding client with retry and an in-memory cache
    - retriever: KBLI/KBJI text search and publication similarity search
    - prompts: System and user prompts per mode
    - synthesis: LLM correction layer with deterministic fallback
    - indexer: Backfills missing chunk embeddings
"""
