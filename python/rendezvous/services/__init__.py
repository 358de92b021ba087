"""Service layer for the rendezvous coordinator.

All domain logic lives here; routes are transport-only.

- accounts: identity store (credentials, usernames)
- sessions: session registry (register, heartbeat, presence)
- friends: friend graph (requests, friendships, are_friends gate)
- liveness: liveness prober (pings)
- signaling: connection request coordinator (offer/answer state machine)
- sweeps: periodic cleanup
- rate_limit: Redis-backed per-account limits on signaling writes
"""
