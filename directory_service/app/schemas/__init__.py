"""
Pydantic schema definitions for API payloads.

Each entity (services, instances, history, statistics) defines its own
Pydantic models for request and response bodies.  Schemas are
separated from the SQL schema to decouple API representation from
persistence.
"""
