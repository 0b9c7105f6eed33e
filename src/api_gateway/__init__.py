"""API Gateway service: path-prefix routing into the platform services."""
