"""Background ZIP scan of the Holosun dealer locator with incremental CSV output."""
