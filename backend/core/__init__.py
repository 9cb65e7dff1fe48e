"""Core logic for indicators, advisory parsing, decision fusion and models.

This package contains pure business logic with no network or storage access.
Everything that performs I/O (price feed, advisory endpoint, signal store,
alerting) is injected by the runtime in app/.
"""
