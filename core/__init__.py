"""
Core business logic package for Clast.

Contains the headless SessionOrchestrator (core.engine), the error taxonomy
(core.errors) and the app-blocking collaborator interface (core.blocking).
Zero UI dependencies.

Submodules are imported explicitly; ai.* depends on core.errors, and
core.engine depends on ai.*.
"""
