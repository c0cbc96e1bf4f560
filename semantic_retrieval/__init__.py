"""
Semantic retrieval engine: chunking, FAISS HNSW vector index and context assembly.
"""
