"""Record store access and paginated batch collection."""
