"""Retrieval helpers: embedders and rerankers."""
