"""Battle domain services: commit-reveal, resolution, turn and match flow.

This package holds the game rules and state transitions so that HTTP
routes and socket handlers stay transport-only. ``commitment`` and
``resolution`` are pure; ``turns`` and ``progression`` read and write the
database inside a single transaction per call.
"""
