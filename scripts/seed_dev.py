#!/usr/bin/env python
"""Seed development database with two befriended accounts.

Creates accounts 'alice' and 'bob', makes them friends, and prints each new
account's bearer credential. Credentials are stored hashed, so an account
that already exists is reported without one.

Constraints:
- Refuses to run in staging or prod (RENDEZVOUS_ENV check)
- Idempotent: existing accounts and friendships are left alone
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... python ../scripts/seed_dev.py
"""

import os
import sys

SEED_USERNAMES = ("alice", "bob")


def main():
    # 1. Environment check (hard fail in staging/prod)
    rendezvous_env = os.getenv("RENDEZVOUS_ENV", "local")
    if rendezvous_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in RENDEZVOUS_ENV={rendezvous_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    if not os.getenv("DATABASE_URL"):
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from rendezvous.db.session import get_session_factory
    from rendezvous.errors import ApiErrorCode, ConflictError
    from rendezvous.services import accounts, friends

    db = get_session_factory()()
    try:
        # 3. Accounts
        account_ids = {}
        for username in SEED_USERNAMES:
            existing = accounts.get_account_by_username(db, username)
            if existing is not None:
                account_ids[username] = existing.id
                print(f"{username}: exists (credential not recoverable)")
                continue
            account, credential = accounts.create_account(db, username)
            account_ids[username] = account.id
            print(f"{username}: created, credential={credential}")

        # 4. Friendship
        alice, bob = SEED_USERNAMES
        try:
            request = friends.send_friend_request(db, account_ids[alice], bob)
            friends.respond_friend_request(db, account_ids[bob], request.id, "accepted")
            print(f"{alice} <-> {bob}: friends")
        except ConflictError as e:
            if e.code == ApiErrorCode.E_ALREADY_FRIENDS:
                print(f"{alice} <-> {bob}: already friends")
            elif e.code == ApiErrorCode.E_REQUEST_EXISTS:
                print(f"{alice} <-> {bob}: friend request already pending, leaving it")
            else:
                raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
