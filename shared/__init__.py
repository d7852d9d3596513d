"""
Shared utilities for the Device Registry service.

This package aggregates the common building blocks used by the service
package and the development mocks:

- config: Service configuration via pydantic-settings
- logging: Structured logging with correlation context
- metrics: Prometheus metrics helpers
- errors: Canonical error types and responses
- base_service: FastAPI application scaffold (health, metrics, errors)
- test_helpers: Factories and doubles for the test suites

Only test_helpers may import from service_* packages.
"""
