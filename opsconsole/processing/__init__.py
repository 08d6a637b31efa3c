"""Pure data shaping: classification, aggregation, filters and documents."""
