"""
Prediction client implementation and data structures.

This package contains:
- base: Request/response dataclasses and the BasePredictionClient interface
- errors: Exception hierarchy
- status: PredictionStatus and its success/failure/pending classification
- client: ReplicateClient for submitting, polling and canceling predictions
- streaming: Server-sent event parsing and PredictionStream
"""

__version__ = '1.0.0'
