"""Deliver run results to an external HTTP endpoint."""

import requests

from ..core.environment import ExecutionEnvironment


def deliver_via_webhook(env: ExecutionEnvironment) -> bool:
    target_url = env.get_input("Target URL")
    if not target_url:
        env.log.error("input -> Target URL is not defined")
        return False
    body = env.get_input("Body")
    if not body:
        env.log.error("input -> Body is not defined")
        return False

    payload = body if isinstance(body, str) else str(body)
    try:
        response = requests.post(
            target_url,
            data=payload.encode("utf-8"),
            headers={"Content-Type": "application/json"},
            timeout=env.services.http_timeout,
        )
    except requests.RequestException as e:
        env.log.error(f"Webhook delivery failed: {str(e)}")
        return False

    if not response.ok:
        env.log.error(f"status code: {response.status_code}")
        return False

    env.log.info(f"Delivered {len(payload)} chars to {target_url}")
    return True
