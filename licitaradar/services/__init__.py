"""Services layer - documents, embeddings, search, chat and feedback."""
