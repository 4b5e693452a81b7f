"""
Shared utilities for the Feature Access SDK.

This package aggregates common building blocks consumed by the SDK:

- config: Client configuration via pydantic-settings
- logging: Structured logging with context correlation
- metrics: Prometheus metrics helpers
- errors: Canonical error types

Nothing in here imports from features_sdk, except the test helpers.
"""
