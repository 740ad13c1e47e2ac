"""Documentation retrieval pipeline components.

This package contains modules for:
- Markdown section parsing and classification
- Section chunking with priority scoring
- Batched embedding generation
- In-memory semantic search
- Corpus snapshots on disk
- Query retrieval
"""
