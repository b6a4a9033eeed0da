"""Shared service foundations: base service, base repository, domain exceptions."""
