"""
RagWeave: document indexing and hybrid retrieval engine.
"""

__version__ = "1.0.0"
