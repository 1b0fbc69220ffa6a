"""
DA Price Index Scraper (Worker)
===============================

Description:
    Background worker that listens for scraping tasks on RabbitMQ and
    publishes the structured results back.

Flow:
    1. A client sends a JSON message to REQUEST_QUEUE:
         {"endpoint": "daily_links", "limit": 10}
         {"endpoint": "data", "date": "September 2, 2025"}
         {"endpoint": "latest"}
    2. The worker runs the matching scraper operation.
    3. The result is published to OUTPUT_QUEUE as JSON.
    4. The request is acknowledged, whether it succeeded or not.
"""

import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, Optional

import pika
from pika.exceptions import AMQPConnectionError

import scraper
from config import get_settings, mask_url
from models import DocumentNotFound, MalformedInput

logger = logging.getLogger("worker")

ENDPOINTS = ("daily_links", "data", "latest")


# ==============================================================================
# TASK EXECUTION
# ==============================================================================

def _lookup_payload(endpoint: str, lookup) -> Dict[str, Any]:
    if isinstance(lookup, MalformedInput):
        return {"status": "BAD_REQUEST", "endpoint": endpoint, "date": lookup.date, "message": lookup.message}
    if isinstance(lookup, DocumentNotFound):
        return {
            "status": "NOT_FOUND",
            "endpoint": endpoint,
            "date": lookup.date,
            "available_dates": lookup.available_dates,
        }
    payload = lookup.model_dump(mode="json")
    payload.update({"status": "SUCCESS", "endpoint": endpoint})
    return payload


async def run_task(request: Dict[str, Any]) -> Dict[str, Any]:
    """Runs one request message and returns the payload to publish"""
    endpoint = request.get("endpoint", "latest")

    if endpoint == "daily_links":
        links = await scraper.list_links(limit=request.get("limit"))
        return {
            "status": "SUCCESS",
            "endpoint": endpoint,
            "links": [link.model_dump() for link in links],
        }

    if endpoint == "data":
        return _lookup_payload(endpoint, await scraper.get_data(request.get("date")))

    return _lookup_payload(endpoint, await scraper.get_latest())


def handle_message(body: bytes) -> Optional[Dict[str, Any]]:
    """
    Decodes and runs one message. Returns None for messages that should be
    dropped (bad JSON, unknown endpoint).
    """
    try:
        request = json.loads(body.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Dropping undecodable message: %s", e)
        return None

    if not isinstance(request, dict) or request.get("endpoint", "latest") not in ENDPOINTS:
        logger.warning("Dropping message with unknown endpoint: %s", request)
        return None

    # pika is synchronous; asyncio.run bridges to the async scraper
    return asyncio.run(run_task(request))


def process_delivery(channel, method, body: bytes, output_queue: str) -> None:
    """Callback body: run, publish, always ack"""
    logger.info("Command received: %s", body[:200])

    try:
        payload = handle_message(body)
        if payload is not None:
            channel.basic_publish(
                exchange='',
                routing_key=output_queue,
                body=json.dumps(payload),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # persistent
                    content_type='application/json',
                ))
            logger.info("Published %s result to '%s'", payload.get("status"), output_queue)
    except Exception:
        logger.exception("Error during processing")

    # Unacked messages would stay stuck in the queue
    channel.basic_ack(delivery_tag=method.delivery_tag)


# ==============================================================================
# CONSUMER LOOP
# ==============================================================================

def start_worker():
    """
    Initializes the RabbitMQ connection and starts the consumer loop.
    This function blocks and runs indefinitely until interrupted.
    """
    settings = get_settings()
    logger.info("Connecting to %s", mask_url(settings.rabbitmq_url))

    params = pika.URLParameters(settings.rabbitmq_url)
    connection = pika.BlockingConnection(params)
    channel = connection.channel()

    # Queues survive a broker restart
    channel.queue_declare(queue=settings.request_queue, durable=True)
    channel.queue_declare(queue=settings.output_queue, durable=True)

    def callback(ch, method, properties, body):
        process_delivery(ch, method, body, settings.output_queue)

    logger.info("Listening for tasks in '%s'", settings.request_queue)
    channel.basic_qos(prefetch_count=1)
    channel.basic_consume(queue=settings.request_queue, on_message_callback=callback, auto_ack=False)
    channel.start_consuming()


if __name__ == "__main__":
    try:
        start_worker()
    except AMQPConnectionError as e:
        logger.error("Could not connect to RabbitMQ: %s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Worker stopped manually.")
        try:
            sys.exit(0)
        except SystemExit:
            os._exit(0)
