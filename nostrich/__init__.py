"""
Nostrich challenge signer.

Answers wallet-connect authentication challenges: key material, challenge
URI parsing, event building and signing, and submission.
"""

from . import client
from . import crypto
from . import event
from . import uri

__version__ = "1.0.0"

__all__ = [
    "client",
    "crypto",
    "event",
    "uri",
]
