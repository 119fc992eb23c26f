#!/usr/bin/env python3
"""Seed the database with a demo election, one voter and a secret code.

Usage:
    python -m scripts.seed_election
    # or from project root:
    python scripts/seed_election.py
"""

import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from ballotguard.common.clock import SystemClock
from ballotguard.common.config import get_settings
from ballotguard.common.database import DatabaseManager
from ballotguard.elections.service import ElectionService
from ballotguard.eligibility.service import EligibilityService
from ballotguard.secret_codes.service import SecretCodeService

DEMO_POSITIONS = {
    "Chair": ["Ada Obi", "Sam Reyes"],
    "Treasurer": ["Lee Park", "Noor Haddad"],
}


async def seed_election() -> None:
    settings = get_settings()
    db = DatabaseManager(settings)
    await db.init()
    await db.create_all()

    now = SystemClock().now()
    elections = ElectionService()
    codes = SecretCodeService(settings)
    eligibility = EligibilityService(settings)

    async with db.get_session() as session:
        election = await elections.create_election(
            session,
            "Demo Board Election",
            start_at=now - timedelta(minutes=5),
            end_at=now + timedelta(days=1),
            status="scheduled",
            results_end=now + timedelta(days=3),
        )
        position_ids = []
        for order, (title, names) in enumerate(DEMO_POSITIONS.items()):
            position = await elections.add_position(session, election.id, title, order=order)
            position_ids.append(position.id)
            for name in names:
                await elections.add_candidate(session, position.id, name)
            print(f"  [created] {title} ({len(names)} candidates)")

        voter = await elections.register_voter(session, "V-0001", "Demo Voter")
        await eligibility.grant(session, voter.id, election.id, position_ids)
        _, plaintext = await codes.issue(session, voter.id, election.id)

    await db.close()
    print(f"\nDone. Election {election.id}")
    print(f"Voter {voter.id} secret code: {plaintext}")
    print("Run `ballotguard tick` to open voting.")


if __name__ == "__main__":
    asyncio.run(seed_election())
