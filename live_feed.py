"""Live test: connect to /ws/operators, feed group messages, watch events arrive.

Register the group first, e.g.:
    curl -X PUT localhost:8000/api/groups/demo-group \
         -H 'content-type: application/json' \
         -d '{"name": "Demo", "group_type": "support"}'
"""

import asyncio
import json
import os
import uuid
from datetime import datetime, timezone

import websockets


HOST = os.environ.get("FACILITATOR_HOST", "localhost:8000")
MESSAGES_URI = f"ws://{HOST}/ws/messages"
OPERATORS_URI = f"ws://{HOST}/ws/operators"
GROUP_ID = os.environ.get("FACILITATOR_DEMO_GROUP", "demo-group")


async def operator_listener(ready_event: asyncio.Event):
    """Connect to /ws/operators and print whatever the engine pushes."""
    async with websockets.connect(OPERATORS_URI) as ws:
        print("[OPERATOR] Connected, waiting for events...\n")
        ready_event.set()

        while True:
            data = json.loads(await ws.recv())
            print("=" * 70)
            print(f"[OPERATOR] {data.get('kind')} in group {data.get('group_id')}")
            if data.get("intervention_type"):
                print(f"  Intervention: {data['intervention_type']}")
            if data.get("tier"):
                print(f"  Distress tier: {data['tier']} (user {data.get('user_id')})")
            for key, value in (data.get("details") or {}).items():
                print(f"  {key}: {value}")
            print("=" * 70)
            print()


async def send_messages():
    """Send a short conversation to /ws/messages."""
    async with websockets.connect(MESSAGES_URI) as ws:
        for sender, text in [
            ("972500000001", "Rough week, I feel really low"),
            ("972500000002", "Same here, everything feels heavy"),
            ("972500000001", "I can't sleep and I'm tired of it all"),
            ("972500000003", "I'm scared, he threatened me again, I need help"),
        ]:
            message = {
                "message_id": uuid.uuid4().hex,
                "group_id": GROUP_ID,
                "sender_id": sender,
                "text": text,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            await ws.send(json.dumps(message))
            ack = json.loads(await ws.recv())
            print(f"[FEED] {text!r} → {ack.get('status')} {ack.get('outcome')}")
            await asyncio.sleep(2)


async def main():
    ready = asyncio.Event()
    listener = asyncio.create_task(operator_listener(ready))
    await ready.wait()

    await send_messages()

    # Give fire-and-forget operator events time to arrive
    await asyncio.sleep(5)
    listener.cancel()
    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(main())
