"""Domain services for Luminax, one package per feature area."""
