"""Mailbox access for MailBrief.

Interfaces:
  :class:`MailGateway`, :class:`ImapMailGateway`, :class:`SendQuotaLedger`.
"""

from .gateway import ImapMailGateway, MailGateway
from .quota import SendQuotaLedger

__all__ = ["MailGateway", "ImapMailGateway", "SendQuotaLedger"]
