"""TOTP enrollment and verification."""
import logging
import secrets
import uuid
from typing import Any, Dict, Optional

import pyotp
import qrcode
import qrcode.image.svg
from flask import current_app

from authcenter.extensions import cache
from authcenter.services.ephemeral import EphemeralStore

logger = logging.getLogger(__name__)

PENDING_SIGNUP_TTL = 600
LOGIN_TICKET_TTL = 300
CODE_DIGITS = 6


class TwoFactorService:
    """TOTP secrets, QR enrollment payloads, the pending-signup store and login tickets.

    A login ticket is handed out once the password step has passed and 2FA
    still has to be completed; enrollment and verification are only
    reachable with it.
    """

    def __init__(self, store: Optional[EphemeralStore] = None, valid_window: Optional[int] = None,
                 tickets: Optional[EphemeralStore] = None):
        self.store = store or EphemeralStore(cache, 'signup_2fa', PENDING_SIGNUP_TTL)
        self.tickets = tickets or EphemeralStore(cache, 'login_2fa', LOGIN_TICKET_TTL)
        if valid_window is None:
            valid_window = current_app.config.get('TOTP_VALID_WINDOW', 1)
        self.valid_window = valid_window

    @staticmethod
    def generate_secret() -> str:
        return pyotp.random_base32()

    @staticmethod
    def provisioning_uri(issuer: str, account: str, secret: str) -> str:
        return pyotp.TOTP(secret).provisioning_uri(name=account, issuer_name=issuer)

    def qr_payload(self, issuer: str, account: str, secret: str) -> str:
        """Render the ``otpauth://`` URI as an SVG document."""
        image = qrcode.make(
            self.provisioning_uri(issuer, account, secret),
            image_factory=qrcode.image.svg.SvgPathImage,
        )
        return image.to_string(encoding='unicode')

    def verify_code(self, secret: Optional[str], code: Any) -> bool:
        if not secret or code is None:
            return False
        code = str(code).strip()
        if len(code) != CODE_DIGITS or not code.isdigit():
            return False
        return pyotp.TOTP(secret).verify(code, valid_window=self.valid_window)

    # Pending signup

    def store_signup(self, fields: Dict[str, Any], secret: str) -> str:
        session_id = str(uuid.uuid4())
        self.store.put(session_id, {'fields': fields, 'secret': secret})
        logger.info(f"Pending signup stored for {fields.get('email')}")
        return session_id

    def fetch_signup(self, session_id: str) -> Optional[Dict[str, Any]]:
        record = self.store.peek(session_id)
        return record.payload if record else None

    def consume_signup(self, session_id: str) -> Optional[Dict[str, Any]]:
        record = self.store.consume(session_id)
        return record.payload if record else None

    def clear_signup(self, session_id: str) -> None:
        self.store.discard(session_id)

    # Login tickets

    def issue_login_ticket(self, user_uuid: str) -> str:
        ticket = secrets.token_urlsafe(32)
        self.tickets.put(ticket, {'uuid': user_uuid})
        return ticket

    def ticket_owner(self, ticket: Optional[str]) -> Optional[str]:
        record = self.tickets.peek(ticket)
        return record.payload.get('uuid') if record else None

    def redeem_login_ticket(self, ticket: str) -> bool:
        """Consume the ticket; False when it was already used or has expired."""
        return self.tickets.consume(ticket) is not None
