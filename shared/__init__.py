"""Models, configuration, storage and the HTTP client shared by every layer."""
