"""Outbound webhook delivery: payloads, signing, attempts and retries."""
