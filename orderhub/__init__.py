"""Order reconciliation service for partitioned restaurant order storage."""
