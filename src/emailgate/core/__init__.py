"""Infrastructure: configuration, logging, database, exceptions and health."""
