"""
Simulate an inbound SMS via the Twilio webhook.

Usage:
    python scripts/simulate_sms.py --from "+15551234567" --body "Can we swap weekends?"
    python scripts/simulate_sms.py --from "+15551234567" --body "2"
    python scripts/simulate_sms.py --status delivered --sid SM_TEST_123
"""
import argparse
import asyncio
import logging
import uuid

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"


async def simulate_inbound_sms(from_phone: str, to_phone: str, body: str, sid: str):
    """Post a form-encoded inbound SMS the way Twilio does."""
    payload = {
        "From": from_phone,
        "To": to_phone,
        "Body": body,
        "MessageSid": sid,
        "NumMedia": "0",
    }
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            f"{BASE_URL}/api/v1/webhook/twilio/sms",
            data=payload,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        logger.info("Inbound SMS response: %s %s", resp.status_code, resp.text)
        return resp


async def simulate_status_callback(sid: str, status: str, error_code: str = ""):
    payload = {"MessageSid": sid, "MessageStatus": status}
    if error_code:
        payload["ErrorCode"] = error_code
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(f"{BASE_URL}/api/v1/webhook/twilio/status", data=payload)
        logger.info("Status callback response: %s %s", resp.status_code, resp.text)
        return resp


async def main():
    parser = argparse.ArgumentParser(description="Simulate Twilio webhooks against a local SafeTalk")
    parser.add_argument("--from", dest="from_phone", default="+15551234567")
    parser.add_argument("--to", dest="to_phone", default="+15559990000")
    parser.add_argument("--body", default="Hi, can we talk about the weekend schedule?")
    parser.add_argument("--sid", default=None, help="MessageSid (random if omitted)")
    parser.add_argument("--status", default=None, help="Send a status callback instead")
    parser.add_argument("--error-code", default="")
    args = parser.parse_args()

    sid = args.sid or f"SM_TEST_{uuid.uuid4().hex}"
    if args.status:
        await simulate_status_callback(sid, args.status, args.error_code)
    else:
        logger.info("Simulating SMS from %s (sid=%s)...", args.from_phone, sid)
        await simulate_inbound_sms(args.from_phone, args.to_phone, args.body, sid)


if __name__ == "__main__":
    asyncio.run(main())
