"""
Pydantic Schemas Package

Request and response models for the API.
"""
