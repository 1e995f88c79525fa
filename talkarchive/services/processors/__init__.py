"""
Text Processors Package

Pure text handling plus the local embedding model.

Modules:
--------
- normalizer: Entity decoding, filler removal, paragraphing, snippets
- chunker: Overlapping sentence-biased spans for embedding
- embedder: Embedding generation using sentence-transformers
"""
