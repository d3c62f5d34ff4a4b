# security.py
"""
Input hygiene for the planner form.
Keeps control characters and prompt-steering text out of the itinerary prompt,
and throttles submissions per client.
"""
from __future__ import annotations

import re
import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, List

from fastapi import Request

from errors import ValidationError

log = logging.getLogger("security")

# Phrasing that tries to steer the model instead of naming a place
PROMPT_INJECTION_PATTERNS = [
    r'\b(ignore|forget|disregard)\s+(previous|above|all|these|your)\s+(instructions?|prompts?|rules?)\b',
    r'\bignore\s+.*\binstructions?\b',
    r'\b(act|behave|pretend|roleplay)\s+as\s+(a|an)?\s*\w+',
    r'\bnow\s+(respond|answer|say|tell|write|generate)\b',
    r'<\s*/?(system|assistant|user)\s*>',
    r'\b(jailbreak|bypass|override)\b',
    r'```',
]

COMPILED_PATTERNS = [re.compile(pattern, re.IGNORECASE | re.MULTILINE) for pattern in PROMPT_INJECTION_PATTERNS]

def sanitize_input(text: str, max_length: int = 500) -> str:
    """Strip control characters and collapse whitespace. Raises ValidationError if too long."""
    if not isinstance(text, str):
        raise ValidationError("Input must be text.")

    sanitized = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    sanitized = re.sub(r'\s+', ' ', sanitized).strip()

    if len(sanitized) > max_length:
        log.warning("Input length exceeded", extra={"length": len(sanitized), "max_length": max_length})
        raise ValidationError(f"Input too long. Maximum {max_length} characters allowed.")
    return sanitized

def detect_prompt_injection(text: str) -> tuple[bool, List[str]]:
    matched = [PROMPT_INJECTION_PATTERNS[i] for i, p in enumerate(COMPILED_PATTERNS) if p.search(text)]
    return len(matched) > 0, matched

def validate_destination(destination: str) -> str:
    clean_destination = sanitize_input(destination, max_length=100)
    if not clean_destination:
        raise ValidationError("Please fill out the destination.")

    is_suspicious, patterns = detect_prompt_injection(clean_destination)
    if is_suspicious:
        log.warning("Suspicious destination detected", extra={
            "destination": destination,
            "patterns": patterns,
        })
        raise ValidationError("Invalid destination. Please provide a valid city or location name.")

    # Should name a place: at least one letter, any script
    if not re.search(r'[^\W\d_]', clean_destination):
        raise ValidationError("Destination must contain letters.")
    return clean_destination

def validate_interests(interests: List[str]) -> List[str]:
    """Sanitized, de-duplicated interests in selection order. Suspicious ones are skipped."""
    if not interests:
        return []

    if len(interests) > 20:
        raise ValidationError("Too many interests. Maximum 20 allowed.")

    clean: List[str] = []
    for interest in interests:
        if not isinstance(interest, str):
            continue
        clean_interest = sanitize_input(interest, max_length=50)
        is_suspicious, patterns = detect_prompt_injection(clean_interest)
        if is_suspicious:
            log.warning("Suspicious interest detected", extra={
                "interest": interest,
                "patterns": patterns,
            })
            continue
        if clean_interest and clean_interest not in clean:
            clean.append(clean_interest)
    return clean

def client_ip(request: Request, trust_proxy: bool = False) -> str:
    if trust_proxy:
        forwarded = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
        if forwarded:
            return forwarded
        if request.headers.get("x-real-ip"):
            return request.headers["x-real-ip"]
    return request.client.host if request.client else "unknown"

class RateLimiter:
    """Sliding-window counter per key. In-memory only."""

    def __init__(self, max_requests: int, window_seconds: int, max_keys: int = 10_000):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_keys = max_keys
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)

    def __len__(self) -> int:
        return len(self._hits)

    def prune(self) -> int:
        """Forget keys with no hit inside the window. Returns how many were dropped."""
        cutoff = time.time() - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] < cutoff]
        for key in stale:
            del self._hits[key]
        return len(stale)

    def allow(self, key: str) -> bool:
        if len(self._hits) >= self.max_keys:
            self.prune()
        now = time.time()
        hits = self._hits[key]
        while hits and hits[0] < now - self.window_seconds:
            hits.popleft()
        if len(hits) >= self.max_requests:
            log.warning("Rate limit exceeded", extra={
                "client_ip": key,
                "requests_count": len(hits),
                "window_seconds": self.window_seconds,
            })
            return False
        hits.append(now)
        return True

    def reset(self) -> None:
        self._hits.clear()

def security_headers_middleware():
    """
    Add security headers to responses.
    """
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"

        return response

    return add_security_headers
