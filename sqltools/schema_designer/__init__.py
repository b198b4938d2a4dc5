"""
Schema Designer tools - optimistic-concurrency editing of database schemas.

This package lets an automated caller read and edit the schema held by an
open schema designer session, and the Data API builder (DAB) configuration
derived from it, without ever overwriting changes it has not seen:
- Reads return a bounded projection plus a content-derived version token
- Edit batches carry the token they were planned against and are rejected
  as stale when the document has moved on
- Batches apply stepwise; the first failing item stops the batch and the
  applied prefix is reported

Architecture:
    ┌──────────────┐     ┌──────────────┐     ┌──────────────────┐
    │ Tool caller  │────▶│ Tool facade  │────▶│ DesignerDocument │
    │ (JSON / HTTP)│     │ target check │     │ version check    │
    └──────────────┘     └──────────────┘     └────────┬─────────┘
                                                       │
                                  ┌────────────────────┼────────────────────┐
                                  ▼                    ▼                    ▼
                           ┌────────────┐       ┌────────────┐       ┌────────────┐
                           │ Schema edit│       │ DAB change │       │ Projection │
                           │  applier   │       │  applier   │       │  builder   │
                           └────────────┘       └────────────┘       └────────────┘

Invariants:
    - Version tokens are pure functions of document content
    - A stale batch never changes the document
    - Partial application is always disclosed to the caller
    - Sessions are held by an injected DocumentRegistry, never a global

How to change safely:
    - Changing hash normalization invalidates outstanding tokens
    - Failure reasons (ErrorKind values) are part of the wire contract

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
