"""Live match services: question sourcing, scoring, timers and advancement.

Transport layers (HTTP routes and Socket.IO handlers) reach these through
the ``MatchRuntime`` stored on the Flask app, keeping core game mechanics
free of request handling.
"""
