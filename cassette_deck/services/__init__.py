"""Stateful services around the pure core.

WHY: Building the transcript depends on a remote capability that may be
unreachable. These services decide when to call it, park work that
cannot run yet, and replay it when the network returns.

HOW: connectivity.py holds the online/offline signal, kv_store.py the
durable storage for the queue, queue.py the retry-bounded offline queue,
orchestrator.py the routing between backend and queue.

RULES:
- Services are constructed explicitly and passed by reference
- No module-level singletons
"""
