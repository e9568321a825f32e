"""Council job orchestration over a plain directory tree.

Why processes and files instead of a task queue?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
The caller is usually an agent that can only issue short, independent tool
calls. Nothing may stay resident between those calls, so all state lives on
disk and every member runs as its own detached worker process:

- ``job.json`` and ``prompt.txt`` are written once, before any worker starts.
- Each ``members/<slug>/status.json`` has exactly one writer (its worker) and
  is always replaced atomically, so readers need no locks.
- ``.wait_cursor`` lets consecutive ``wait`` calls resume a bucketed long-poll.

Restarting or losing the dispatching process never affects in-flight members.
"""
