"""Request and response models for API endpoints."""
