"""Service layer for business logic.

Services hold the business rules and keep routes thin:
- Step lifecycle (state machine, ownership policy, StepStatusChanged events)
- Service status derivation and the work order aggregator
- Statistics and monthly dashboard snapshots

Layer hierarchy:
    Routes (HTTP) -> Services (Business Logic) -> Repositories (Database)

Services should:
- Raise services.errors.DomainError subclasses for user-facing failures
- Orchestrate calls to repositories inside the caller's session
- Flush, never commit (the request dependency owns the transaction)

Services should NOT:
- Directly execute SQL queries (use repositories)
- Know about HTTP request/response details
"""
