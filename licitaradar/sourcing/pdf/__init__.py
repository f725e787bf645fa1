"""PDF text extraction and chunking."""
