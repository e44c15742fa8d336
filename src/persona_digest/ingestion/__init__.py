"""Mail ingestion components."""

from .maildrop import EmailParserProtocol, MailDropError, MaildropMailClient
from .parser import EmailParser

__all__ = [
    "EmailParser",
    "EmailParserProtocol",
    "MailDropError",
    "MaildropMailClient",
]
