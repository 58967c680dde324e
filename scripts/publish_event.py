"""Publish a business event envelope to a Kafka topic.

Useful for manual scheduling checks and duplicate-event testing: pass the same
`--event-id` twice and the second publish is skipped by the inbox.
"""

import argparse
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from aiokafka import AIOKafkaProducer


async def publish(bootstrap_servers: str, topic: str, envelope: dict) -> None:
    """Open producer, publish one message, close producer."""

    producer = AIOKafkaProducer(bootstrap_servers=bootstrap_servers)
    await producer.start()
    try:
        await producer.send_and_wait(topic, json.dumps(envelope).encode("utf-8"))
    finally:
        await producer.stop()


def main() -> None:
    """Parse CLI args, wrap the payload in an envelope and publish it."""

    parser = argparse.ArgumentParser(description="Publish a business event to Kafka.")
    parser.add_argument("--bootstrap-servers", default="localhost:9092")
    parser.add_argument(
        "--topic",
        required=True,
        choices=[
            "appointments.created",
            "appointments.cancelled",
            "galleries.ready",
            "selections.submitted",
            "payments.approved",
        ],
    )
    parser.add_argument("--aggregate-id", required=True, help="Appointment id the event is about")
    parser.add_argument("--tenant-id", default="default")
    parser.add_argument("--event-id", default=None, help="Reuse an id to exercise inbox dedupe")
    parser.add_argument("--json", dest="json_inline", default=None, help="Inline JSON payload")
    parser.add_argument("--file", dest="json_file", default=None, help="Path to JSON payload file")
    args = parser.parse_args()

    if args.json_inline and args.json_file:
        raise SystemExit("Provide at most one of --json or --file")

    payload = {}
    if args.json_inline:
        payload = json.loads(args.json_inline)
    elif args.json_file:
        payload = json.loads(Path(args.json_file).read_text())

    envelope = {
        "event_id": args.event_id or str(uuid4()),
        "event_type": args.topic,
        "aggregate_id": args.aggregate_id,
        "tenant_id": args.tenant_id,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "trace_id": str(uuid4()),
        "payload": payload,
    }
    asyncio.run(publish(args.bootstrap_servers, args.topic, envelope))
    print(f"Published event_id={envelope['event_id']} to topic={args.topic}")


if __name__ == "__main__":
    main()
