"""
Hairfolio Backend: Application Package
=======================================

What: Backend for the salon portfolio product. Designers publish hairstyle
      images, clients try them on virtually, designers read engagement analytics.

Architecture Note:
    The package follows the same layered layout for every concern:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (try-on, analytics,      │  ← State machine, counters,
    │   portfolio, persistence gateway)   │    dual-sink persistence
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │  Remote store (SQL) + local mirror  │  ← Async SQLAlchemy / JSON file
    └─────────────────────────────────────┘

    Long-lived services are built once by ServiceContainer (see
    hairfolio.dependencies) and injected into routes.
"""

__version__ = "1.0.0"
