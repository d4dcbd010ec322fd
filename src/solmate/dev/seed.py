"""Demo data: three senders, eight receivers and eight matches in every state.

Reputation counters are derived from the seeded matches so they agree with
what the match engine would have written.
"""

from __future__ import annotations

import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from solmate.config import get_settings
from solmate.db.models import (
    Gender,
    Match,
    MatchStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
)
from solmate.ledger import BaseLedger, call_ledger
from solmate.matches.state_machine import TIMESTAMP_FIELDS
from solmate.matches.tipping import bind_match_escrow

logger = structlog.get_logger()

_PHOTO = "https://images.unsplash.com/photo-{}?w=400&h=600&fit=crop&crop=face&auto=format"

DEMO_USERS: list[dict] = [
    {
        "wallet_address": "demo-sugar-daddy-1",
        "name": "Alex",
        "age": 35,
        "gender": Gender.MALE,
        "bio": "Tech entrepreneur & crypto enthusiast. Building the future, one investment at a time",
        "photos": [_PHOTO.format("1507003211169-0a1dd7228f2d")],
        "preferred_tip_amount": 5,
        "is_online": True,
        "active_minutes_ago": 0,
    },
    {
        "wallet_address": "demo-sugar-daddy-2",
        "name": "Marcus",
        "age": 42,
        "gender": Gender.MALE,
        "bio": "Investment banker & wine collector. Love fine dining and meaningful conversations",
        "photos": [_PHOTO.format("1472099645785-5658abf4ff4e")],
        "preferred_tip_amount": 8,
        "is_online": True,
        "active_minutes_ago": 30,
    },
    {
        "wallet_address": "demo-sugar-daddy-3",
        "name": "David",
        "age": 38,
        "gender": Gender.MALE,
        "bio": "Real estate mogul. Passionate about art, travel, and spoiling the right person",
        "photos": [_PHOTO.format("1500648767791-00dcc994a43e")],
        "preferred_tip_amount": 10,
        "is_online": False,
        "active_minutes_ago": 120,
    },
    {
        "wallet_address": "demo-sugar-baby-1",
        "name": "Sophia",
        "age": 26,
        "gender": Gender.FEMALE,
        "bio": "Adventure seeker & coffee enthusiast. Med student by day, explorer by heart",
        "photos": [_PHOTO.format("1494790108755-2616b612b786")],
        "preferred_tip_amount": 3,
        "is_online": True,
        "active_minutes_ago": 0,
    },
    {
        "wallet_address": "demo-sugar-baby-2",
        "name": "Emma",
        "age": 24,
        "gender": Gender.FEMALE,
        "bio": "Yoga instructor & wellness advocate. Seeking someone who values mindfulness and growth",
        "photos": [_PHOTO.format("1438761681033-6461ffad8d80")],
        "preferred_tip_amount": 5,
        "is_online": True,
        "active_minutes_ago": 15,
    },
    {
        "wallet_address": "demo-sugar-baby-3",
        "name": "Isabella",
        "age": 27,
        "gender": Gender.FEMALE,
        "bio": "Creative soul & art lover. Graphic designer looking for inspiration and genuine connection",
        "photos": [_PHOTO.format("1534528741775-53994a69daeb")],
        "preferred_tip_amount": 2,
        "is_online": True,
        "active_minutes_ago": 5,
    },
    {
        "wallet_address": "demo-sugar-baby-4",
        "name": "Olivia",
        "age": 25,
        "gender": Gender.FEMALE,
        "bio": "Tech enthusiast & fitness lover. Software engineer who loves hiking and trying new cuisines",
        "photos": [_PHOTO.format("1544005313-94ddf0286df2")],
        "preferred_tip_amount": 4,
        "is_online": True,
        "active_minutes_ago": 0,
    },
    {
        "wallet_address": "demo-sugar-baby-5",
        "name": "Ava",
        "age": 23,
        "gender": Gender.FEMALE,
        "bio": "Fashion designer & world traveler. Building my own brand while studying in Paris",
        "photos": [_PHOTO.format("1524504388940-b1c1722653e1")],
        "preferred_tip_amount": 3,
        "is_online": False,
        "active_minutes_ago": 240,
    },
    {
        "wallet_address": "demo-sugar-baby-6",
        "name": "Mia",
        "age": 28,
        "gender": Gender.FEMALE,
        "bio": "Chef & foodie extraordinaire. Opening my own restaurant soon",
        "photos": [_PHOTO.format("1529626455594-4ff0802cfb7e")],
        "preferred_tip_amount": 4,
        "is_online": True,
        "active_minutes_ago": 60,
    },
    {
        "wallet_address": "demo-sugar-baby-7",
        "name": "Charlotte",
        "age": 22,
        "gender": Gender.FEMALE,
        "bio": "Psychology student & aspiring therapist. Fascinated by deep conversations",
        "photos": [_PHOTO.format("1517841905240-472988babdf9")],
        "preferred_tip_amount": 2,
        "is_online": True,
        "active_minutes_ago": 0,
    },
    {
        "wallet_address": "demo-sugar-baby-8",
        "name": "Luna",
        "age": 26,
        "gender": Gender.FEMALE,
        "bio": "Professional dancer & choreographer. Bringing art to life through movement",
        "photos": [_PHOTO.format("1531746020798-e6953c6e8e04")],
        "preferred_tip_amount": 6,
        "is_online": False,
        "active_minutes_ago": 360,
    },
]

# (sender, receiver, tip, status, created hours ago, settled hours ago)
DEMO_MATCHES: list[tuple[str, str, int, MatchStatus, int, int | None]] = [
    ("demo-sugar-daddy-1", "demo-sugar-baby-1", 5, MatchStatus.ACCEPTED, 50, 48),
    ("demo-sugar-daddy-1", "demo-sugar-baby-2", 3, MatchStatus.PENDING, 6, None),
    ("demo-sugar-daddy-1", "demo-sugar-baby-3", 2, MatchStatus.REJECTED, 25, 20),
    ("demo-sugar-daddy-2", "demo-sugar-baby-4", 8, MatchStatus.ACCEPTED, 72, 70),
    ("demo-sugar-daddy-2", "demo-sugar-baby-5", 6, MatchStatus.GHOSTED, 120, 95),
    ("demo-sugar-daddy-3", "demo-sugar-baby-7", 10, MatchStatus.PENDING, 4, None),
    ("demo-sugar-daddy-3", "demo-sugar-baby-8", 12, MatchStatus.REJECTED, 48, 40),
    ("demo-sugar-daddy-3", "demo-sugar-baby-6", 8, MatchStatus.GHOSTED, 168, 143),
]

# Settlement audit row per terminal status: (type, paid to sender?)
_SETTLEMENT_AUDIT = {
    MatchStatus.ACCEPTED: (TransactionType.TIP_RECEIVED, False),
    MatchStatus.REJECTED: (TransactionType.REFUND, True),
    MatchStatus.GHOSTED: (TransactionType.REFUND, True),
}


def derive_counters() -> dict[str, Counter[str]]:
    """Reputation counters per wallet implied by ``DEMO_MATCHES``."""
    counters: dict[str, Counter[str]] = {u["wallet_address"]: Counter() for u in DEMO_USERS}
    for sender, receiver, _tip, status, _created, _settled in DEMO_MATCHES:
        if status is MatchStatus.ACCEPTED:
            counters[sender]["match_count"] += 1
            counters[receiver]["match_count"] += 1
        elif status is MatchStatus.GHOSTED:
            counters[sender]["ghosted_by_count"] += 1
            counters[receiver]["ghosted_count"] += 1
    return counters


async def seed_demo_data(
    db: AsyncSession,
    ledger: BaseLedger | None = None,
    *,
    now: datetime | None = None,
) -> dict[str, int]:
    """Wipe users, matches and transactions, then insert the demo set.

    With a ledger, each PENDING demo tip is locked from the sender and bound
    to its match so it can be accepted, rejected or ghosted like a real one.
    """
    now = now or datetime.now(timezone.utc)
    expiry = timedelta(hours=get_settings().match_expiry_hours)

    await db.execute(delete(Transaction))
    await db.execute(delete(Match))
    await db.execute(delete(User))

    counters = derive_counters()
    users: dict[str, User] = {}
    for data in DEMO_USERS:
        fields = {k: v for k, v in data.items() if k != "active_minutes_ago"}
        wallet = data["wallet_address"]
        user = User(
            id=str(uuid.uuid4()),
            **fields,
            last_active=now - timedelta(minutes=data["active_minutes_ago"]),
            created_at=now - timedelta(days=14),
            updated_at=now,
            match_count=counters[wallet]["match_count"],
            ghosted_count=counters[wallet]["ghosted_count"],
            ghosted_by_count=counters[wallet]["ghosted_by_count"],
        )
        users[wallet] = user
        db.add(user)

    transactions = 0
    escrowed: list[Match] = []
    for sender_wallet, receiver_wallet, tip, status, created_ago, settled_ago in DEMO_MATCHES:
        sender, receiver = users[sender_wallet], users[receiver_wallet]
        created_at = now - timedelta(hours=created_ago)
        tx_hash = f"0xdemo{sender.name.lower()}{receiver.name.lower()}"
        amount = Decimal(tip)
        if ledger is not None and settled_ago is None:
            receipt = await call_ledger("lock_funds", ledger.lock_funds(sender_wallet, amount))
            tx_hash = receipt.transaction_hash
        low, high = Match.pair_key(sender.id, receiver.id)
        match = Match(
            sender=sender,
            receiver=receiver,
            pair_low_id=low,
            pair_high_id=high,
            tip_amount=amount,
            transaction_hash=tx_hash,
            status=status,
            created_at=created_at,
            expires_at=created_at + expiry,
        )
        db.add(match)
        db.add(
            Transaction(
                wallet_address=sender_wallet,
                type=TransactionType.TIP_SENT,
                amount=amount,
                transaction_hash=tx_hash,
                match=match,
                timestamp=created_at,
                status=TransactionStatus.CONFIRMED,
            )
        )
        transactions += 1
        if settled_ago is None:
            if ledger is not None:
                escrowed.append(match)
            continue

        settled_at = now - timedelta(hours=settled_ago)
        setattr(match, TIMESTAMP_FIELDS[status], settled_at)
        audit_type, to_sender = _SETTLEMENT_AUDIT[status]
        db.add(
            Transaction(
                wallet_address=sender_wallet if to_sender else receiver_wallet,
                type=audit_type,
                amount=amount,
                transaction_hash=f"{tx_hash}-settle",
                match=match,
                timestamp=settled_at,
                status=TransactionStatus.CONFIRMED,
            )
        )
        transactions += 1

    await db.commit()
    if ledger is not None:
        for match in escrowed:
            await bind_match_escrow(ledger, match, match.sender.wallet_address)

    summary = {"users": len(users), "matches": len(DEMO_MATCHES), "transactions": transactions}
    logger.info("demo_data_seeded", **summary)
    return summary
