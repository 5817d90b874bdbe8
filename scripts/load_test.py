"""Load test: hammer conversation creation and messaging with concurrent clients.

Creates user pairs, has both sides of every pair open their conversation at
the same time (in both argument orders), then sends a burst of messages and
checks that every pair ended up with exactly one conversation and that no
message went missing.
Usage: python -m scripts.load_test [--pairs 25] [--openers 8] [--messages 20] [--base-url http://localhost:8000]
"""
import argparse
import asyncio
import random
import statistics
import sys
import time
import uuid
from typing import Any

import httpx


DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_PAIRS = 25
DEFAULT_OPENERS = 8
DEFAULT_MESSAGES = 20

LANGUAGE_PAIRS = [("pt", "en"), ("es", "fr"), ("ja", "de"), ("it", "ko"), ("zh", "ar")]

SAMPLE_MESSAGES = [
    "Hi! Want to practise together this week?",
    "Olá! Tudo bem?",
    "How do you say 'see you tomorrow'?",
    "That sentence sounds natural to me.",
    "Could you correct my last message?",
    "Let's switch languages after ten minutes.",
]


def headers_for(uid: str) -> dict[str, str]:
    return {"X-User-Id": uid, "X-User-Name": f"Load {uid[-6:]}"}


async def create_user(client: httpx.AsyncClient, base_url: str, native: str, target: str) -> str | None:
    """Create a set-up profile via the API and return its uid."""
    uid = f"load-{uuid.uuid4().hex[:12]}"
    try:
        resp = await client.post(f"{base_url}/api/v1/profiles/me", headers=headers_for(uid))
        if resp.status_code not in (200, 201):
            print(f"  [WARN] Profile {uid}: status {resp.status_code}")
            return None
        resp = await client.put(
            f"{base_url}/api/v1/profiles/me/languages",
            headers=headers_for(uid),
            json={"native_language": native, "target_language": target},
        )
        if resp.status_code != 200:
            print(f"  [WARN] Languages {uid}: status {resp.status_code}")
            return None
        return uid
    except httpx.HTTPError as e:
        print(f"  [ERROR] Profile {uid}: {e}")
        return None


async def open_conversation(client: httpx.AsyncClient, base_url: str, caller: str, other: str) -> dict[str, Any] | None:
    try:
        resp = await client.post(
            f"{base_url}/api/v1/conversations",
            headers=headers_for(caller),
            json={"other_user_id": other},
        )
        if resp.status_code in (200, 201):
            return resp.json()
        print(f"  [WARN] Open {caller}->{other}: status {resp.status_code}")
        return None
    except httpx.HTTPError as e:
        print(f"  [ERROR] Open {caller}->{other}: {e}")
        return None


async def send_message(client: httpx.AsyncClient, base_url: str, sender: str, conversation_id: str) -> bool:
    try:
        resp = await client.post(
            f"{base_url}/api/v1/conversations/{conversation_id}/messages",
            headers=headers_for(sender),
            json={"text": random.choice(SAMPLE_MESSAGES)},
        )
        return resp.status_code == 201
    except httpx.HTTPError as e:
        print(f"  [ERROR] Send in {conversation_id}: {e}")
        return False


async def run_load_test(base_url: str, pairs: int, openers: int, messages: int) -> dict[str, Any]:
    """Run the full load test pipeline."""
    print(f"\n{'='*60}")
    print(f"Tandem Load Test — {pairs} pairs, {openers} openers, {messages} messages")
    print(f"Target: {base_url}")
    print(f"{'='*60}\n")

    results = {
        "pairs": pairs,
        "pairs_ok": 0,
        "duplicate_creates": 0,
        "messages_sent": 0,
        "messages_missing": 0,
        "errors": [],
        "timings": {"open": [], "send": []},
    }

    async with httpx.AsyncClient(timeout=30.0) as client:
        # Phase 1: Create complementary user pairs
        print(f"[1/3] Creating {pairs * 2} users...")
        user_pairs = []
        for i in range(pairs):
            native, target = LANGUAGE_PAIRS[i % len(LANGUAGE_PAIRS)]
            a = await create_user(client, base_url, native, target)
            b = await create_user(client, base_url, target, native)
            if a and b:
                user_pairs.append((a, b))
        print(f"  -> {len(user_pairs)} pairs ready\n")

        # Phase 2: Open every pair's conversation concurrently from both sides
        print(f"[2/3] Opening conversations with {openers} concurrent callers per pair...")
        conversation_ids = {}
        for a, b in user_pairs:
            calls = [(a, b) if n % 2 == 0 else (b, a) for n in range(openers)]
            t0 = time.monotonic()
            outcomes = await asyncio.gather(
                *(open_conversation(client, base_url, caller, other) for caller, other in calls)
            )
            results["timings"]["open"].append(time.monotonic() - t0)

            ok = [o for o in outcomes if o is not None]
            ids = {o["conversation"]["id"] for o in ok}
            created = sum(1 for o in ok if o["created"])
            if len(ok) == openers and len(ids) == 1 and created <= 1:
                results["pairs_ok"] += 1
                conversation_ids[(a, b)] = ids.pop()
            else:
                results["errors"].append(f"Pair {a}/{b}: ids={sorted(ids)} created={created}")
            if created > 1:
                results["duplicate_creates"] += created - 1
        print(f"  -> {results['pairs_ok']}/{len(user_pairs)} pairs resolved to one conversation\n")

        # Phase 3: Message bursts, then verify counts
        print(f"[3/3] Sending {messages} messages per conversation...")
        for (a, b), cid in conversation_ids.items():
            senders = [random.choice((a, b)) for _ in range(messages)]
            t0 = time.monotonic()
            sent = await asyncio.gather(*(send_message(client, base_url, s, cid) for s in senders))
            results["timings"]["send"].append(time.monotonic() - t0)
            delivered = sum(1 for s in sent if s)
            results["messages_sent"] += delivered

            resp = await client.get(
                f"{base_url}/api/v1/conversations/{cid}/messages",
                headers=headers_for(a),
            )
            stored = len(resp.json()) if resp.status_code == 200 else 0
            if stored != delivered:
                results["messages_missing"] += abs(delivered - stored)
                results["errors"].append(f"Conversation {cid}: sent {delivered}, stored {stored}")
        print(f"  -> {results['messages_sent']} messages sent\n")

    # Summary
    print(f"{'='*60}")
    print("LOAD TEST RESULTS")
    print(f"{'='*60}")
    print(f"Pairs with one conversation: {results['pairs_ok']}/{pairs}")
    print(f"Duplicate creates:           {results['duplicate_creates']}")
    print(f"Messages sent:               {results['messages_sent']}")
    print(f"Messages missing:            {results['messages_missing']}")

    for phase, timings in results["timings"].items():
        if timings:
            print(f"\n{phase} latency:")
            print(f"  mean:   {statistics.mean(timings):.2f}s")
            print(f"  median: {statistics.median(timings):.2f}s")
            print(f"  p95:    {sorted(timings)[int(len(timings)*0.95)]:.2f}s")
            print(f"  max:    {max(timings):.2f}s")

    if results["errors"]:
        print(f"\nErrors ({len(results['errors'])}):")
        for e in results["errors"][:10]:
            print(f"  - {e}")

    print(f"\n{'='*60}\n")
    return results


def main():
    parser = argparse.ArgumentParser(description="Tandem Load Test")
    parser.add_argument("--pairs", type=int, default=DEFAULT_PAIRS, help="Number of user pairs")
    parser.add_argument("--openers", type=int, default=DEFAULT_OPENERS, help="Concurrent openers per pair")
    parser.add_argument("--messages", type=int, default=DEFAULT_MESSAGES, help="Messages per conversation")
    parser.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    args = parser.parse_args()

    results = asyncio.run(run_load_test(args.base_url, args.pairs, args.openers, args.messages))

    if results["duplicate_creates"] or results["messages_missing"] or results["pairs_ok"] < args.pairs:
        print("FAIL: invariants violated under load")
        sys.exit(1)
    print("PASS: one conversation per pair, no lost messages")


if __name__ == "__main__":
    main()
