"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: GitHub contents API (versioned file backing store)
- anthropic: Claude API client for keyword suggestions

These wrappers translate between external formats and our domain models.
"""
