"""
Isolation Context

Caller identity and provider settings handed to the healing rules.
The healing engine never reads the environment or the clock itself: the
caller resolves everything here (context_from_env does it from .env / os.environ)
and passes the context in.

    identity  — caller id (e.g. Supabase auth user UUID); namespaces names/paths
    seed      — starting value for synthesized webhook path suffixes
                (next_seed() supplies a fresh one when the caller has none)
    email     — EmailProvider settings for the email-send rewrite rule
"""

import os
import threading
import time
from typing import Optional

from dotenv import load_dotenv

TAG_LENGTH = 8
NAME_PREFIX_FORMAT = "[USR-{tag}] "
PATH_PREFIX_FORMAT = "usr-{tag}-"
SUFFIX_DIGITS = 6

DEFAULT_EMAIL_ENDPOINT = "https://api.resend.com/emails"
DEFAULT_FROM_EMAIL = "onboarding@resend.dev"
DEFAULT_SUBJECT = "Workflow notification"

# n8n expressions used when the caller did not resolve a concrete value
ENV_API_KEY_EXPRESSION = "{{ $env.RESEND_API_KEY }}"
RECIPIENT_EXPRESSION = "={{ $json.email }}"


def user_tag(identity: Optional[str]) -> str:
    """Short deterministic tag derived from a caller identity ('' when absent)."""
    if not identity:
        return ""
    return str(identity).strip()[:TAG_LENGTH]


class EmailProvider:
    """Transactional-email provider settings (Resend-shaped API)."""

    def __init__(self, api_key: Optional[str] = None, endpoint: str = DEFAULT_EMAIL_ENDPOINT,
                 from_email: str = DEFAULT_FROM_EMAIL, to_email: Optional[str] = None,
                 subject: str = DEFAULT_SUBJECT):
        self.api_key = api_key
        self.endpoint = endpoint
        self.from_email = from_email
        self.to_email = to_email
        self.subject = subject

    def authorization_header(self) -> str:
        if self.api_key:
            return f"Bearer {self.api_key}"
        return f"=Bearer {ENV_API_KEY_EXPRESSION}"

    def recipient(self) -> str:
        return self.to_email or RECIPIENT_EXPRESSION


class PathSequence:
    """Seeded, monotonically increasing source of webhook path suffixes."""

    def __init__(self, seed: int = 0):
        self._next = int(seed)

    def next_suffix(self) -> str:
        value = self._next
        self._next += 1
        return str(value % 10 ** SUFFIX_DIGITS).zfill(SUFFIX_DIGITS)


class IsolationContext:
    """Everything a healing run needs from its caller."""

    def __init__(self, identity: Optional[str] = None, seed: int = 0,
                 email: Optional[EmailProvider] = None):
        self.identity = identity
        self.seed = seed
        self.email = email or EmailProvider()

    @property
    def tag(self) -> str:
        return user_tag(self.identity)

    def name_prefix(self) -> str:
        return NAME_PREFIX_FORMAT.format(tag=self.tag) if self.tag else ""

    def path_prefix(self) -> str:
        return PATH_PREFIX_FORMAT.format(tag=self.tag) if self.tag else ""

    def new_sequence(self) -> PathSequence:
        """A fresh suffix sequence; one per healing run keeps heal() deterministic."""
        return PathSequence(self.seed)


_seed_lock = threading.Lock()
_last_seed = 0


def next_seed() -> int:
    """Strictly increasing seed derived from the wall clock (microseconds).

    Consecutive calls in one process never return the same value, so
    back-to-back heals get distinct webhook path suffixes.
    """
    global _last_seed
    with _seed_lock:
        _last_seed = max(_last_seed + 1, time.time_ns() // 1000)
        return _last_seed


def context_from_env(identity: Optional[str] = None, seed: Optional[int] = None,
                     to_email: Optional[str] = None, subject: Optional[str] = None) -> IsolationContext:
    """Build an IsolationContext with email provider settings from the environment.

    Reads RESEND_API_KEY, RESEND_API_URL, RESEND_FROM_EMAIL.
    A seed of None is replaced by next_seed().
    """
    if seed is None:
        seed = next_seed()
    load_dotenv()
    email = EmailProvider(
        api_key=os.environ.get("RESEND_API_KEY", "").strip() or None,
        endpoint=os.environ.get("RESEND_API_URL", "").strip() or DEFAULT_EMAIL_ENDPOINT,
        from_email=os.environ.get("RESEND_FROM_EMAIL", "").strip() or DEFAULT_FROM_EMAIL,
        to_email=to_email,
        subject=subject or DEFAULT_SUBJECT,
    )
    return IsolationContext(identity=identity, seed=seed, email=email)
