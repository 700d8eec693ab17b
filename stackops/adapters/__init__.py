"""Adapter package for external I/O implementations.

Purpose:
    Collect the concrete HTTP transport and the REST client implementing
    ``stackops.domain.ports.StackServicePort``.

Dependencies:
    Submodules depend on ``requests`` and the domain protocol definitions.

Call context:
    Imported by composition code (for runtime wiring) and by tests (for
    transport-level behavior verification).
"""
