"""
Browser Workflow Engine

Executes node/edge workflow graphs of browser automation steps:
- Worklist traversal with condition branching
- Run-scoped ${variable} passing between steps
- Pluggable action boundary (HTTP or in-process)
- Per-node failure aggregation
"""

__version__ = "0.1.0"
